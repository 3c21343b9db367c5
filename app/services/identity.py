"""
Builds users from profiles verified by the external identity provider
"""

import logging
from typing import Any, Dict, Iterable, Tuple

from app.core.errors import ValidationError
from app.models.effects import Effects, Persist
from app.models.user import User
from app.services.registry import Registry

logger = logging.getLogger(__name__)


def _profile_emails(profile: Dict[str, Any]) -> list:
    emails = []
    for entry in profile.get("emails") or []:
        value = entry.get("value") if isinstance(entry, dict) else entry
        if value and value not in emails:
            emails.append(value)
    return emails


def upsert_user_from_profile(
    registry: Registry,
    profile: Dict[str, Any],
    admin_emails: Iterable[str] = (),
) -> Tuple[User, Effects]:
    """Create or refresh the user for ``profile``.

    Users created earlier (e.g. by joining a permalink session) keep their
    permissions and superuser flag; profile fields are refreshed.
    """
    if not profile.get("id"):
        raise ValidationError("profile is missing an id")

    user_id = str(profile["id"])
    user = registry.get_user(user_id)
    if user is None:
        user = User(id=user_id)
        logger.info(f"Creating user:{user_id} from identity profile")

    user.display_name = profile.get("displayName") or user.display_name
    user.emails = _profile_emails(profile) or user.emails
    picture = profile.get("picture")
    if picture is None and isinstance(profile.get("image"), dict):
        picture = profile["image"].get("url")
    user.picture = picture or user.picture
    user.link = profile.get("link", user.link)

    admin_emails = set(admin_emails)
    if any(email in admin_emails for email in user.emails):
        logger.info(f"Detected login from blessed email account, granting admin rights to user:{user_id}")
        user.admin = True

    registry.add_user(user)
    return user, [Persist(user)]
