from . import models

enum_register = {
    "payment_draft_status": models.PaymentDraftStatus,
    "transaction_status": models.TransactionStatus,
}
