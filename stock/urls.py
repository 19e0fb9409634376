from django.urls import path
from . import views

app_name = "stock"

urlpatterns = [
    path("items/", views.ItemListView.as_view(), name="item-list"),
    path("items/categories/", views.ItemCategoryView.as_view(), name="item-categories"),
    path("items/<int:item_id>/", views.ItemDetailView.as_view(), name="item-detail"),
    path("items/<int:item_id>/stock/", views.ItemStockView.as_view(), name="item-stock"),
    path("items/<int:item_id>/boms/", views.ItemBomView.as_view(), name="item-boms"),
    path("items/<int:item_id>/ledger/", views.ItemLedgerView.as_view(), name="item-ledger"),

    path("warehouses/", views.WarehouseListView.as_view(), name="warehouse-list"),
    path("warehouses/<int:warehouse_id>/", views.WarehouseDetailView.as_view(), name="warehouse-detail"),

    path("boms/", views.BomListView.as_view(), name="bom-list"),
    path("boms/<int:bom_id>/", views.BomDetailView.as_view(), name="bom-detail"),
    path("boms/<int:bom_id>/toggle-active/", views.BomToggleActiveView.as_view(), name="bom-toggle-active"),
    path("boms/<int:bom_id>/explode/", views.BomExplodeView.as_view(), name="bom-explode"),
    path("boms/<int:bom_id>/availability/", views.BomAvailabilityView.as_view(), name="bom-availability"),

    path("balances/", views.BalanceListView.as_view(), name="balance-list"),
    path("balances/<int:item_id>/", views.BalanceItemView.as_view(), name="balance-item"),
    path("balances/<int:item_id>/<int:warehouse_id>/", views.BalanceDetailView.as_view(), name="balance-detail"),

    path("movements/", views.MovementListView.as_view(), name="movement-list"),
    path("summary/", views.StockSummaryView.as_view(), name="stock-summary"),
    path("low-stock/", views.LowStockView.as_view(), name="low-stock"),
    path("verify/", views.LedgerVerifyView.as_view(), name="ledger-verify"),

    path("productions/", views.ProductionListView.as_view(), name="production-list"),
    path("productions/summary/", views.ProductionSummaryView.as_view(), name="production-summary"),
    path("productions/<int:production_id>/", views.ProductionDetailView.as_view(), name="production-detail"),
]
