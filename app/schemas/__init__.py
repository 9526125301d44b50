from app.schemas.products import ProductCreatePayload, BidPayload, BidResponsePayload
from app.schemas.wallet import DepositPayload
from app.schemas.ratings import RatingPayload, RatingEligibilityResponse, RatingSummaryResponse
from app.schemas.users import UserSyncPayload
