"""
Validation and permission checks for Busline API.

This module centralizes guard logic such as:
- Token validation
- Role-based permission checks
- State transition enforcement

All functions raise appropriate exceptions from `busline.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from datetime import datetime, timezone
from typing import Any
from sqlalchemy.orm.session import Session
from sqlalchemy import Column

from busline.src.db import Account, AccountToken, Agent
from busline.src import exceptions
from busline.src.enums import AccountRole, AccountStatus, AgentStatus
from busline.src.functions import isValidTransition
from busline.src.schemas import Principal


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def accountToken(access_token: str, session: Session) -> AccountToken:
    """
    Validate a bearer access token.

    A token is valid while it has not expired, its account is active and
    the account password has not changed since the token was issued.

    Args:
        access_token (str): The bearer token string provided by the client.
        session (Session): Active SQLAlchemy session for DB lookup.

    Returns:
        AccountToken: The valid token object from the database.

    Raises:
        exceptions.InvalidToken: If the token is unknown, expired or stale.
    """
    current_time = datetime.now(timezone.utc)

    result = (
        session.query(AccountToken, Account)
        .join(Account, Account.id == AccountToken.account_id)
        .filter(
            AccountToken.access_token == access_token,
            AccountToken.expires_at > current_time,
        )
        .first()
    )
    if result is None:
        raise exceptions.InvalidToken()

    token, account = result
    if token.credential_version != account.credential_version:
        raise exceptions.InvalidToken()
    if account.status != AccountStatus.ACTIVE:
        raise exceptions.InvalidToken()
    return token


# ---------------------------------------------------------------------------
# Permission checks
# ---------------------------------------------------------------------------
def role(principal: Principal, *roles: AccountRole) -> bool:
    """
    Validate that the principal holds one of `roles`.

    Raises:
        exceptions.NoPermission: If the principal has none of the roles.
    """
    if principal.role in roles:
        return True
    raise exceptions.NoPermission()


def activeAgent(principal: Principal, session: Session) -> Agent:
    """
    Validate that the principal is an agent allowed to sell bookings.

    Raises:
        exceptions.NoPermission: If there is no ACTIVE agency profile.
    """
    agent = session.query(Agent).filter(Agent.account_id == principal.account_id).first()
    if principal.role != AccountRole.AGENT or agent is None:
        raise exceptions.NoPermission()
    if agent.status != AgentStatus.ACTIVE:
        raise exceptions.NoPermission()
    return agent


# ---------------------------------------------------------------------------
# Other validations
# ---------------------------------------------------------------------------
def stateTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any, state: Column
) -> bool:
    """
    Validate whether a state transition is allowed.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.
        state (Column): SQLAlchemy column representing the state
            (used to format error messages).

    Returns:
        bool: True if the transition is valid.

    Raises:
        exceptions.InvalidStateTransition: If the transition is not permitted.
    """
    if not isValidTransition(transitions, old_state, new_state):
        raise exceptions.InvalidStateTransition(state)
    return True
