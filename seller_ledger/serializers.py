"""JSON shapes for ledger entities.

Money leaves the service as decimal strings so clients never round through
binary floats.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from seller_ledger.models import (
    OrderSupplyUsage,
    Sale,
    SaleOrder,
    SellingPlatform,
    SupplyBatch,
    SupplyType,
)
from seller_ledger.services.order_service import OrderDetail
from seller_ledger.services.shipping_cost_service import ConfigCostPreview
from seller_ledger.services.summary_service import SellerSummary
from seller_ledger.services.supply_catalog_service import ShippingConfigDetail
from seller_ledger.services.supply_inventory_service import SupplyInventoryRow


def money(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(value)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def sale_to_dict(sale: Sale) -> dict:
    return {
        'id': sale.id,
        'card_id': sale.card_id,
        'collection_item_id': sale.collection_item_id,
        'platform_id': sale.platform_id,
        'order_id': sale.order_id,
        'shipping_config_id': sale.shipping_config_id,
        'status': sale.status.value,
        'sale_date': _iso(sale.sale_date),
        'purchase_price': money(sale.purchase_price),
        'sale_price': money(sale.sale_price),
        'shipping_charged': money(sale.shipping_charged),
        'shipping_cost': money(sale.shipping_cost),
        'platform_fees': money(sale.platform_fees),
        'other_fees': money(sale.other_fees),
        'supply_cost': money(sale.supply_cost),
        'adjustment': money(sale.adjustment),
        'total_revenue': money(sale.total_revenue),
        'total_costs': money(sale.total_costs),
        'net_profit': money(sale.net_profit),
        'buyer_username': sale.buyer_username,
        'tracking_number': sale.tracking_number,
        'notes': sale.notes,
        'created_at': _iso(sale.created_at),
        'updated_at': _iso(sale.updated_at),
    }


def usage_to_dict(usage: OrderSupplyUsage) -> dict:
    return {
        'id': usage.id,
        'supply_batch_id': usage.supply_batch_id,
        'quantity_used': usage.quantity_used,
        'cost_per_unit': money(usage.cost_per_unit),
        'total_cost': money(usage.total_cost),
    }


def order_to_dict(order: SaleOrder) -> dict:
    return {
        'id': order.id,
        'platform_id': order.platform_id,
        'shipping_config_id': order.shipping_config_id,
        'order_reference': order.order_reference,
        'buyer_username': order.buyer_username,
        'status': order.status.value,
        'ship_date': _iso(order.ship_date),
        'shipping_charged': money(order.shipping_charged),
        'shipping_cost': money(order.shipping_cost),
        'tracking_number': order.tracking_number,
        'notes': order.notes,
        'config_cost': money(order.config_cost),
        'extra_supply_cost': money(order.extra_supply_cost),
        'total_supply_cost': money(order.total_supply_cost),
        'created_at': _iso(order.created_at),
        'updated_at': _iso(order.updated_at),
    }


def order_detail_to_dict(detail: OrderDetail) -> dict:
    payload = order_to_dict(detail.order)
    payload['sales'] = [sale_to_dict(sale) for sale in detail.sales]
    payload['supplies'] = [usage_to_dict(usage) for usage in detail.usages]
    return payload


def platform_to_dict(platform: SellingPlatform) -> dict:
    return {
        'id': platform.id,
        'name': platform.name,
        'is_default': platform.user_id is None,
        'fee_percentage': money(platform.fee_percentage),
        'payment_fee_pct': money(platform.payment_fee_pct),
        'fixed_fee': money(platform.fixed_fee),
        'active': platform.active,
    }


def supply_type_to_dict(supply_type: SupplyType) -> dict:
    return {
        'id': supply_type.id,
        'name': supply_type.name,
        'description': supply_type.description,
        'active': supply_type.active,
    }


def batch_to_dict(batch: SupplyBatch) -> dict:
    return {
        'id': batch.id,
        'supply_type_id': batch.supply_type_id,
        'purchase_date': _iso(batch.purchase_date),
        'quantity_purchased': batch.quantity_purchased,
        'quantity_remaining': batch.quantity_remaining,
        'total_cost': money(batch.total_cost),
        'cost_per_unit': money(batch.cost_per_unit),
        'is_depleted': batch.is_depleted,
        'notes': batch.notes,
        'source_url': batch.source_url,
    }


def inventory_row_to_dict(row: SupplyInventoryRow) -> dict:
    return {
        'supply_type_id': row.supply_type_id,
        'name': row.name,
        'total_remaining': row.total_remaining,
        'batch_count': row.batch_count,
        'min_cost': money(row.min_cost),
        'max_cost': money(row.max_cost),
        'avg_cost': money(row.avg_cost),
    }


def shipping_config_to_dict(detail: ShippingConfigDetail) -> dict:
    config = detail.config
    return {
        'id': config.id,
        'name': config.name,
        'description': config.description,
        'active': config.active,
        'items': [
            {
                'id': line.item_id,
                'supply_type_id': line.supply_type_id,
                'supply_type_name': line.supply_type_name,
                'quantity': line.quantity,
            }
            for line in detail.items
        ],
    }


def preview_to_dict(preview: ConfigCostPreview) -> dict:
    return {
        'shipping_config_id': preview.shipping_config_id,
        'shipping_config_name': preview.shipping_config_name,
        'total_cost': money(preview.total_cost),
        'error': preview.error,
        'items': [
            {
                'supply_type_id': item.supply_type_id,
                'supply_type_name': item.supply_type_name,
                'quantity': item.quantity,
                'unit_cost': money(item.unit_cost),
                'cost': money(item.cost),
                'error': item.error,
            }
            for item in preview.items
        ],
    }


def summary_to_dict(summary: SellerSummary) -> dict:
    return {
        'status_counts': summary.status_counts,
        'total_sales': summary.total_sales,
        'sold_totals': {
            'total_revenue': money(summary.sold_total_revenue),
            'total_costs': money(summary.sold_total_costs),
            'net_profit': money(summary.sold_net_profit),
        },
        'parked_supply_cost': money(summary.parked_supply_cost),
    }
