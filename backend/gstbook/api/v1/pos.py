"""
Point of Sale API Routes
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gstbook.core.database import get_db
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import FeatureGate
from gstbook.models import TeamMember
from gstbook.schemas import POSSaleRequest, POSSaleResponse
from gstbook.services.activity_service import ActivityService, ActivityType
from gstbook.services.pos_service import POSService

router = APIRouter(prefix="/pos", tags=["Point of Sale"])


@router.post("/sale", response_model=POSSaleResponse, status_code=status.HTTP_201_CREATED)
async def create_sale(
    sale: POSSaleRequest,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(FeatureGate("cash_sales"))
):
    """Invoice, send and settle a counter sale; any amount tendered above the total is returned as change"""
    def operation():
        result = POSService(db).create_sale(sale, member.team, user_id=member.user_id)
        invoice = result["invoice"]
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.POS_SALE,
            resource_type="Invoice",
            resource_id=invoice.id,
            description=f"POS sale {invoice.invoice_number}: applied {result['amount_applied']}, "
                        f"change {result['change']}",
            user_id=member.user_id,
        )
        return result

    return raise_for_result(run_operation(db, operation))
