from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from .settings import settings

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
SCOPES = "openid email profile"


class GoogleAuthError(Exception):
	pass


def _require_config() -> None:
	if not settings.google_client_id or not settings.google_client_secret:
		raise GoogleAuthError("Google OAuth is not configured")


def build_authorization_url(state: str) -> str:
	_require_config()
	params = {
		"client_id": settings.google_client_id,
		"redirect_uri": settings.google_callback_url,
		"response_type": "code",
		"scope": SCOPES,
		"state": state,
		"prompt": "select_account",
	}
	return f"{AUTHORIZE_URL}?{urlencode(params)}"


async def fetch_google_profile(code: str, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, Any]:
	"""Exchange an authorization code and return the normalized Google profile.

	The result has ``google_id``, ``email``, ``name`` and ``picture`` keys.
	"""
	_require_config()
	async with httpx.AsyncClient(timeout=15, transport=transport) as client:
		try:
			r = await client.post(
				TOKEN_URL,
				data={
					"code": code,
					"client_id": settings.google_client_id,
					"client_secret": settings.google_client_secret,
					"redirect_uri": settings.google_callback_url,
					"grant_type": "authorization_code",
				},
			)
			r.raise_for_status()
			access_token = r.json().get("access_token")
			if not access_token:
				raise GoogleAuthError("Google token response has no access_token")
			r = await client.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
			r.raise_for_status()
			data = r.json()
		except (httpx.HTTPError, ValueError) as err:
			raise GoogleAuthError(f"Google OAuth request failed: {err}") from err
	google_id = data.get("sub") or data.get("id")
	email = data.get("email")
	if not google_id or not email:
		raise GoogleAuthError("Invalid profile data from Google")
	return {
		"google_id": str(google_id),
		"email": email,
		"name": data.get("name") or email.split("@")[0],
		"picture": data.get("picture"),
	}
