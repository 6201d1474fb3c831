from typing import Annotated, Mapping

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from helpdesk.core.config import Settings, get_settings
from helpdesk.tickets.models import Identity

bearer_scheme = HTTPBearer(auto_error=False)


def parse_token_map(tokens: Mapping[str, str]) -> dict[str, Identity]:
    """Turn ``token -> "actor_id:ROLE"`` settings into identities.

    Entries without a role separator are skipped. Unknown roles are kept as
    ``None`` so the access policy can deny them.
    """

    identities: dict[str, Identity] = {}
    for token, value in tokens.items():
        actor_id, sep, role = value.partition(":")
        if not sep or not actor_id.strip():
            continue
        identities[token] = Identity.of(actor_id.strip(), role)
    return identities


def resolve_identity_from_token(token: str | None, settings: Settings) -> Identity:
    """Return the identity associated with the provided bearer token."""

    if token is None:
        raise HTTPException(status_code=401, detail="Missing authentication credentials")

    identity = parse_token_map(settings.auth_tokens).get(token)
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")
    return identity


async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> Identity:
    """Resolve the caller from a static token table.

    Token issuance and verification belong to an external identity provider;
    this lookup only maps an already-issued token to ``(actor_id, role)``.
    """

    cached = getattr(request.state, "identity", None)
    if isinstance(cached, Identity):
        return cached

    token = credentials.credentials if credentials is not None else None
    identity = resolve_identity_from_token(token, settings)
    request.state.identity = identity
    return identity


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
