from .catalog_service import CatalogService
from .review_service import ReviewService
from .upload_service import UploadService
from .cart_service import CartService
from .checkout_service import CheckoutService
from .notification_service import OrderNotifier
from .account_service import AccountService
from .admin_service import AdminService
from .dashboard_service import DashboardService

__all__ = [
    "CatalogService",
    "ReviewService",
    "UploadService",
    "CartService",
    "CheckoutService",
    "OrderNotifier",
    "AccountService",
    "AdminService",
    "DashboardService",
]
