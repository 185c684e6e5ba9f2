from . import models

enum_register = {
    "listing_kind": models.ListingKind,
    "product_category": models.Product.Category,
    "product_unit": models.Product.Unit,
    "agri_input_category": models.AgriInput.Category,
    "agri_input_unit": models.AgriInput.Unit,
    "stock_direction": models.StockAdjustment.Direction,
}
