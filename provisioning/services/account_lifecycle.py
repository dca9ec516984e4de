"""
Account lifecycle state machine.

States are the ``AccountStatus`` tag stored on each credential record. Every
change of status goes through ``transition``, which is pure: it only looks at
the current tag, the event and the two facts the rules depend on (whether the
member has logged in, whether their profile is complete).

    PENDING_SETUP --first login, profile complete--> ACTIVE
    PENDING_SETUP --first login, profile incomplete--> INCOMPLETE
    INCOMPLETE    --profile completed (after login)--> ACTIVE
    any           --suspend (admin)--> SUSPENDED
    SUSPENDED     --reinstate (admin)--> state derived from the facts
"""
from enum import Enum

from provisioning.models.tenant_member import AccountStatus


class AccountEvent(str, Enum):
    FIRST_LOGIN = "FIRST_LOGIN"
    PROFILE_COMPLETED = "PROFILE_COMPLETED"
    SUSPEND = "SUSPEND"
    REINSTATE = "REINSTATE"


def derive_status(has_logged_in: bool, profile_completed: bool) -> AccountStatus:
    """Status an unsuspended account should hold given its lifecycle facts."""
    if not has_logged_in:
        return AccountStatus.PENDING_SETUP
    if profile_completed:
        return AccountStatus.ACTIVE
    return AccountStatus.INCOMPLETE


def transition(
    status: AccountStatus,
    event: AccountEvent,
    has_logged_in: bool,
    profile_completed: bool
) -> AccountStatus:
    """
    Compute the next account status.

    Args:
        status: Current status tag
        event: Lifecycle event being applied
        has_logged_in: Whether first_login_at is set (after applying the event)
        profile_completed: Whether the profile is complete (after applying the event)

    Returns:
        The new status; unchanged when the event does not apply
    """
    if event == AccountEvent.SUSPEND:
        return AccountStatus.SUSPENDED

    if status == AccountStatus.SUSPENDED:
        if event == AccountEvent.REINSTATE:
            return derive_status(has_logged_in, profile_completed)
        return status

    if event == AccountEvent.REINSTATE:
        return status

    if event == AccountEvent.FIRST_LOGIN:
        if status in (AccountStatus.PENDING_SETUP, AccountStatus.INCOMPLETE) and has_logged_in:
            return derive_status(has_logged_in, profile_completed)
        return status

    if event == AccountEvent.PROFILE_COMPLETED:
        if status == AccountStatus.INCOMPLETE and has_logged_in and profile_completed:
            return AccountStatus.ACTIVE
        return status

    return status
