from . import models

enum_register = {
    "order_status": models.OrderStatus,
    "payment_method": models.PaymentMethod,
}
