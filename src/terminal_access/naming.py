"""Resource name generation from naming templates."""

from __future__ import annotations

import re
import secrets
import string

from terminal_access.errors import FatalError, InvalidTemplateError

CLUSTER_ID_VAR = "${cluster_id}"
USER_ID_VAR = "${user_id}"
RANDOM_ID_VAR = "${random_id}"
# Reserved for use inside the pod manifest template, never in access names.
POD_NAME_VAR = "${pod_name}"

TERMINAL_ACCESS_POD_NAME_TEMPLATE = (
    "terminal-access-" + CLUSTER_ID_VAR + "-" + USER_ID_VAR + "-" + RANDOM_ID_VAR
)
TERMINAL_ACCESS_POD_TEMPLATE_NAME = "terminal-access-pod-template"

RANDOM_ID_LENGTH = 6
# Job names are copied into the job-name pod label, which caps them at 63.
MAX_NAME_LENGTH = 63

_RANDOM_ALPHABET = string.ascii_lowercase + string.digits
_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_PLACEHOLDER_PATTERN = re.compile(r"\$\{[^}]*\}")


def generate_random_id(length: int = RANDOM_ID_LENGTH) -> str:
    """Generate a short lowercase alphanumeric token.

    Args:
        length: Number of characters.

    Returns:
        Random token safe for use in Kubernetes names.
    """
    return "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(length))


def is_valid_resource_name(name: str) -> bool:
    """Check a Job name against the Kubernetes name and label-value rules."""
    return len(name) <= MAX_NAME_LENGTH and bool(_NAME_PATTERN.match(name))


def resolve(template: str, cluster_id: int, user_id: int) -> str:
    """Expand a naming template into a concrete resource name.

    The random placeholder is regenerated on every call; the other two are
    deterministic.

    Args:
        template: Template containing ``${cluster_id}``, ``${user_id}`` and
            ``${random_id}`` placeholders.
        cluster_id: Target cluster id.
        user_id: Requesting user id.

    Returns:
        Resolved resource name.

    Raises:
        InvalidTemplateError: If the result is not a valid Kubernetes name.
    """
    name = (
        template.replace(CLUSTER_ID_VAR, str(cluster_id))
        .replace(USER_ID_VAR, str(user_id))
        .replace(RANDOM_ID_VAR, generate_random_id())
    )

    leftover = _PLACEHOLDER_PATTERN.search(name)
    if leftover:
        raise InvalidTemplateError(
            f"unknown placeholder {leftover.group(0)} in template '{template}'"
        )
    if not is_valid_resource_name(name):
        raise InvalidTemplateError(
            f"template '{template}' resolved to invalid resource name '{name}'"
        )
    return name


def validate_template(template: str) -> None:
    """Fail fast on a template that can never produce a valid name.

    Raises:
        FatalError: If the template is malformed.
    """
    if RANDOM_ID_VAR not in template:
        raise FatalError(
            f"template '{template}' has no {RANDOM_ID_VAR} placeholder; "
            "names would collide across sessions"
        )
    try:
        resolve(template, cluster_id=1, user_id=1)
    except InvalidTemplateError as e:
        raise FatalError(str(e)) from e
