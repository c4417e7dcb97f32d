"""Admin API endpoints for operations staff."""
import hmac
import logging
from fastapi import APIRouter, Depends, HTTPException, Header
from app.db.session import AsyncSessionLocal
from app.schemas.orders import SweepOut
from app.services.notification_service import NotificationDispatcher
from app.services.settlement_service import SettlementService
from app.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def verify_admin_token(x_admin_token: str = Header(None)):
    """Timing-safe token-based admin auth."""
    expected = settings.ADMIN_TOKEN
    if not expected or not x_admin_token:
        raise HTTPException(status_code=403, detail="Forbidden")
    if not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=403, detail="Forbidden")
    return True


@router.post("/settlement/run", response_model=SweepOut)
async def run_settlement(auth: bool = Depends(verify_admin_token)):
    """Run the settlement sweep now instead of waiting for the scheduler."""
    async with AsyncSessionLocal() as session:
        service = SettlementService(session, notifier=NotificationDispatcher())
        result = await service.run_settlement_sweep()
    logger.info(f"Manual settlement sweep: {result.processed} processed, {len(result.errors)} errors")
    return SweepOut(processed=result.processed, errors=result.errors)
