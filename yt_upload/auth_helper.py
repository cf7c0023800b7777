"""
Authentication Helper
=====================
Obtains the bearer token passed through to the upload endpoints.
"""

import os
from typing import Optional

from google.auth import default
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

UPLOAD_SCOPES = [
    "https://www.googleapis.com/auth/youtube.upload",
    "https://www.googleapis.com/auth/youtube.readonly",
]


def get_access_token(token: Optional[str] = None, service_account_path: Optional[str] = None) -> str:
    """
    Get an OAuth2 access token for uploading.

    Order: explicit token, YT_ACCESS_TOKEN, service account file,
    application default credentials.

    Args:
        token: Token supplied by the caller (returned unchanged)
        service_account_path: Path to service account JSON file (or from env)

    Returns:
        Access token string
    """
    if token:
        return token

    env_token = os.getenv("YT_ACCESS_TOKEN")
    if env_token:
        return env_token

    if not service_account_path:
        service_account_path = os.getenv("GOOGLE_SERVICE_ACCOUNT_PATH")

    if service_account_path and os.path.exists(service_account_path):
        credentials = service_account.Credentials.from_service_account_file(
            service_account_path,
            scopes=UPLOAD_SCOPES,
        )
        credentials.refresh(Request())
        return credentials.token

    try:
        credentials, _ = default(scopes=UPLOAD_SCOPES)
        credentials.refresh(Request())
        return credentials.token
    except GoogleAuthError as e:
        raise RuntimeError(
            "No valid credentials found. Set YT_ACCESS_TOKEN, GOOGLE_SERVICE_ACCOUNT_PATH "
            "or use gcloud auth application-default login"
        ) from e
