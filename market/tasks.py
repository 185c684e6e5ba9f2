import logging
from smtplib import SMTPException

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)  # 5 minute delay between retries
def send_email(self, to_email, subject, message):
    """
    Send a plain-text notification email. Retries on SMTP and connection failures.
    """
    try:
        send_mail(
            subject=subject,
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[to_email],
            fail_silently=False,
        )
    except (SMTPException, OSError) as e:
        logger.warning(f"Temporary email error for {to_email}: {e}")
        if self.request.retries < self.max_retries:
            # Exponential backoff: 5min, 10min, 20min
            raise self.retry(exc=e, countdown=300 * (2**self.request.retries))
        logger.error(f"Email to {to_email} failed after {self.max_retries} retries: {e}")
        return f"Email failed for {to_email}"

    logger.info(f"Email sent successfully to {to_email} with subject: {subject}")
    return f"Email sent successfully to {to_email}"


@shared_task
def notify_order_placed(order_id):
    from .models import Order

    try:
        order = Order.objects.get(pk=order_id)
    except Order.DoesNotExist:
        logger.warning(f"Order {order_id} not found for placement notification")
        return

    lines = "\n".join(f"- {item['name']} x {item['quantity']} @ Rs. {item['price']}" for item in order.items)
    send_email.delay(
        order.seller_email,
        f"New order {order.order_number}",
        f"You have a new order from {order.buyer_email}.\n\n{lines}\n\nTotal: Rs. {order.total_amount}\n"
        f"Payment: {order.get_payment_method_display()}\nDeliver to: {order.delivery_address}",
    )
    send_email.delay(
        order.buyer_email,
        f"Order {order.order_number} placed",
        f"Your order with {order.seller_email} has been placed.\n\n{lines}\n\nTotal: Rs. {order.total_amount}",
    )


@shared_task
def notify_order_status_changed(order_id, previous_status):
    from .models import Order

    try:
        order = Order.objects.get(pk=order_id)
    except Order.DoesNotExist:
        logger.warning(f"Order {order_id} not found for status notification")
        return

    send_email.delay(
        order.buyer_email,
        f"Order {order.order_number} is now {order.get_status_display()}",
        f"Your order status changed from {previous_status} to {order.status}.",
    )
    if order.status == "cancelled":
        send_email.delay(
            order.seller_email,
            f"Order {order.order_number} cancelled",
            f"The buyer {order.buyer_email} cancelled order {order.order_number}.",
        )
