"""View-models hosting the deal clients behind a session guard."""

from src.dealdesk.views.buyer import BuyerDealsView
from src.dealdesk.views.seller import SELLER_DASHBOARD_ROUTE, SellerDealView

__all__ = ["BuyerDealsView", "SellerDealView", "SELLER_DASHBOARD_ROUTE"]
