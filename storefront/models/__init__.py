from storefront.models.product import Product
from storefront.models.variant import ProductVariant, variant_option_map
from storefront.models.option import OptionType, OptionValue
from storefront.models.image import VariantImage
from storefront.models.delivery import DeliveryMethod
from storefront.models.inventory import InventoryStock
from storefront.models.order import Order, OrderItem
from storefront.models.payment import PaymentRecord

__all__ = [
    "Product",
    "ProductVariant",
    "variant_option_map",
    "OptionType",
    "OptionValue",
    "VariantImage",
    "DeliveryMethod",
    "InventoryStock",
    "Order",
    "OrderItem",
    "PaymentRecord",
]
