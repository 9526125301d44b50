# importing this package registers every table on Base.metadata
from app.models.user import User  # noqa: F401
from app.models.product import Product, Bid  # noqa: F401
from app.models.wallet import Wallet, Transaction  # noqa: F401
from app.models.notification import Notification, NotificationReceipt  # noqa: F401
from app.models.rating import Rating  # noqa: F401
from app.models.idempotency_key import IdempotencyKeyRecord  # noqa: F401
