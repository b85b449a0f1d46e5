"""Current user endpoint."""

from fastapi import APIRouter, Depends

from workload_ledger.core.auth import RequestUserContext, get_current_user_context

router = APIRouter(prefix="/me", tags=["me"])


@router.get("")
def get_me(context: RequestUserContext = Depends(get_current_user_context)) -> dict[str, object]:
    """Return the resolved caller identity."""

    return {
        "id": str(context.user_id),
        "email": context.email,
        "display_name": context.display_name,
        "role": context.role.value,
        "active": context.active,
    }
