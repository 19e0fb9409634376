from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import (
    RangeDateFilter,
    RangeNumericFilter,
)

from .models import (
    Item, Warehouse, BillOfMaterials, BomLine, StockBalance, StockMovement, Production,
)
from .services.sequence_service import DocumentSequenceService


class ReadOnlyLedgerAdmin(ModelAdmin):
    """Ledger rows are written by the services only."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Item)
class ItemAdmin(ModelAdmin):
    list_display = ['code', 'name', 'category', 'unit_of_measure', 'role_badges', 'status_badge', 'reorder_level']
    list_filter = [
        'is_active',
        'is_raw_material',
        'is_finished_good',
        'is_manufactured',
        'category',
    ]
    search_fields = ['code', 'name', 'description']
    list_filter_submit = True
    list_fullwidth = True

    fieldsets = (
        (_('Basic Information'), {
            'fields': ('code', 'name', 'description', 'category', 'unit_of_measure'),
            'classes': ['tab'],
        }),
        (_('Classification'), {
            'fields': ('is_raw_material', 'is_finished_good', 'is_purchased', 'is_manufactured', 'is_active'),
            'classes': ['tab'],
        }),
        (_('Costing'), {
            'fields': ('reorder_level', 'standard_cost', 'standard_selling_price'),
            'classes': ['tab'],
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        if obj:
            return ['code']
        return []

    @display(description=_("Type"))
    def role_badges(self, obj):
        roles = []
        if obj.is_raw_material:
            roles.append("Raw")
        if obj.is_finished_good:
            roles.append("Finished")
        if obj.is_manufactured:
            roles.append("Manufactured")
        return ", ".join(roles) or "-"

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.is_active:
            return 'success', _("Active")
        return 'danger', _("Inactive")


@admin.register(Warehouse)
class WarehouseAdmin(ModelAdmin):
    list_display = ['code', 'name', 'location', 'status_badge', 'created_at']
    list_filter = ['is_active']
    search_fields = ['code', 'name', 'location']
    list_filter_submit = True

    def get_readonly_fields(self, request, obj=None):
        if obj:
            return ['code']
        return []

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.is_active:
            return 'success', _("Active")
        return 'danger', _("Inactive")


class BomLineInline(TabularInline):
    model = BomLine
    extra = 0
    fields = ('item', 'quantity', 'sort_order')
    autocomplete_fields = ['item']


@admin.register(BillOfMaterials)
class BillOfMaterialsAdmin(ModelAdmin):
    list_display = ['bom_number', 'name', 'output_item_link', 'output_quantity', 'line_count', 'status_badge']
    list_filter = [
        'is_active',
        ('created_at', RangeDateFilter),
    ]
    search_fields = ['bom_number', 'name', 'output_item__code', 'output_item__name']
    list_filter_submit = True
    inlines = [BomLineInline]
    readonly_fields = ['bom_number', 'created_by', 'created_at', 'updated_at']
    autocomplete_fields = ['output_item']

    fieldsets = (
        (_('Recipe'), {
            'fields': ('bom_number', 'name', 'output_item', 'output_quantity', 'description', 'is_active')
        }),
        (_('Audit'), {
            'fields': ('created_by', 'created_at', 'updated_at')
        }),
    )

    def save_model(self, request, obj, form, change):
        if not obj.bom_number:
            obj.bom_number = DocumentSequenceService.next_number(DocumentSequenceService.BOM)
            obj.created_by = request.user
        super().save_model(request, obj, form, change)

    @display(description=_("Output"))
    def output_item_link(self, obj):
        url = reverse('admin:stock_item_change', args=[obj.output_item_id])
        return format_html('<a href="{}">{}</a>', url, obj.output_item.code)

    @display(description=_("Lines"))
    def line_count(self, obj):
        return obj.lines.count()

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.is_active:
            return 'success', _("Active")
        return 'warning', _("Inactive")


@admin.register(StockBalance)
class StockBalanceAdmin(ReadOnlyLedgerAdmin):
    list_display = ['item', 'warehouse', 'quantity', 'last_movement_at']
    list_filter = [
        'warehouse',
        ('quantity', RangeNumericFilter),
    ]
    search_fields = ['item__code', 'item__name', 'warehouse__code']
    list_filter_submit = True


@admin.register(StockMovement)
class StockMovementAdmin(ReadOnlyLedgerAdmin):
    list_display = ['movement_number', 'movement_date', 'type_badge', 'item', 'warehouse',
                    'quantity', 'balance_after', 'reference_number']
    list_filter = [
        'movement_type',
        'warehouse',
        ('movement_date', RangeDateFilter),
    ]
    search_fields = ['movement_number', 'reference_number', 'item__code', 'item__name']
    list_filter_submit = True
    list_fullwidth = True

    @display(description=_("Type"), label=True)
    def type_badge(self, obj):
        colors = {
            'PURCHASE': 'success',
            'SALE': 'info',
            'PRODUCTION_IN': 'success',
            'PRODUCTION_OUT': 'warning',
            'ADJUSTMENT': 'danger',
        }
        return colors.get(obj.movement_type, 'info'), obj.get_movement_type_display()


@admin.register(Production)
class ProductionAdmin(ReadOnlyLedgerAdmin):
    list_display = ['production_number', 'production_date', 'output_item', 'output_quantity',
                    'raw_materials_warehouse', 'finished_goods_warehouse', 'bom']
    list_filter = [
        'finished_goods_warehouse',
        ('production_date', RangeDateFilter),
    ]
    search_fields = ['production_number', 'output_item__code', 'output_item__name']
    list_filter_submit = True
