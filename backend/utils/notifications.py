import os
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from twilio.rest import Client
import logging

logger = logging.getLogger(__name__)

# --- Email Configuration ---
SMTP_SERVER = os.getenv("SMTP_SERVER")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
EMAIL_SENDER = os.getenv("EMAIL_SENDER")

# --- Twilio Configuration ---
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")

NOTIFICATION_ORDER_STATUS = "order_status"
NOTIFICATION_STOCK_ALERT = "stock_alert"
NOTIFICATION_GENERAL = "general"

# Customer-facing message per retail order status
RETAIL_STATUS_MESSAGES = {
    "placed": "Your order has been placed successfully!",
    "processed": "Your order is being prepared.",
    "out_for_delivery": "Your order is out for delivery!",
    "delivered": "Your order has been delivered. Enjoy!",
    "cancelled": "Your order has been cancelled by the seller.",
}


def short_order_id(order_id) -> str:
    return str(order_id)[-8:]


def order_status_title(order_id) -> str:
    return f"Order #{short_order_id(order_id)} Update"


def stock_alert_message(product_name: str) -> tuple[str, str]:
    """Title and message for a product that just ran out of stock"""
    return "Product Out of Stock", f"{product_name} is now out of stock. Please restock soon."


def send_email(to_email: str, subject: str, body_html: str):
    """Sends an email using SMTP."""
    if not all([SMTP_SERVER, SMTP_PORT, SMTP_USER, SMTP_PASSWORD, EMAIL_SENDER]):
        logger.error("SMTP settings are not fully configured. Cannot send email.")
        return False

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = EMAIL_SENDER
    message["To"] = to_email
    message.attach(MIMEText(body_html, "html"))

    try:
        with smtplib.SMTP(SMTP_SERVER, SMTP_PORT) as server:
            server.starttls()
            server.login(SMTP_USER, SMTP_PASSWORD)
            server.sendmail(EMAIL_SENDER, to_email, message.as_string())
        logger.info(f"Email sent successfully to {to_email}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def send_sms(to_phone_number: str, body: str):
    """Sends an SMS using Twilio."""
    if not all([TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER]):
        logger.error("Twilio settings are not fully configured. Cannot send SMS.")
        return False

    try:
        client = Client(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN)
        message = client.messages.create(
            body=body,
            from_=TWILIO_PHONE_NUMBER,
            to=to_phone_number
        )
        logger.info(f"SMS sent successfully to {to_phone_number}, SID: {message.sid}")
        return True
    except Exception as e:
        logger.error(f"Failed to send SMS to {to_phone_number}: {e}")
        return False


# Email Templates
def get_order_status_email(order_data: dict, status: str) -> tuple[str, str]:
    """Generate retail order status update email"""
    subject = f"{order_status_title(order_data['id'])} - {status.replace('_', ' ').title()}"

    body = f"""
    <html>
    <body>
        <h2>{RETAIL_STATUS_MESSAGES.get(status, 'Your order has been updated.')}</h2>
        <p>Hello,</p>

        <div style="background-color: #f5f5f5; padding: 15px; border-radius: 5px;">
            <h3>Order Details:</h3>
            <p><strong>Order ID:</strong> {order_data['id']}</p>
            <p><strong>Items:</strong> {order_data.get('product_name', 'N/A')}</p>
            <p><strong>Quantity:</strong> {order_data['quantity']}</p>
            <p><strong>Total Amount:</strong> ₹{order_data['total_price']:.2f}</p>
            <p><strong>Status:</strong> {status.replace('_', ' ').title()}</p>
        </div>

        <p>Thank you for shopping with LiveMart!</p>
        <p>Best regards,<br>LiveMart Team</p>
    </body>
    </html>
    """

    return subject, body


def get_stock_alert_email(product_name: str) -> tuple[str, str]:
    """Generate out-of-stock email for a seller"""
    subject, message = stock_alert_message(product_name)

    body = f"""
    <html>
    <body>
        <h2>{subject}</h2>
        <p>Hello,</p>
        <p>{message}</p>
        <p>Best regards,<br>LiveMart Team</p>
    </body>
    </html>
    """

    return subject, body


# SMS Templates
def get_order_status_sms(order_data: dict, status: str) -> str:
    """Generate retail order status SMS"""
    message = RETAIL_STATUS_MESSAGES.get(status, "Your order has been updated.")
    return f"Order #{short_order_id(order_data['id'])}: {message} - LiveMart"


def dispatch_order_status(contact: dict, order_data: dict, status: str):
    """
    Out-of-band delivery of a retail status change to the buyer.
    Runs as a background task after the status write has committed.
    """
    if contact.get("email"):
        subject, body = get_order_status_email(order_data, status)
        send_email(contact["email"], subject, body)
    if contact.get("phone"):
        send_sms(contact["phone"], get_order_status_sms(order_data, status))


def dispatch_stock_alert(contact: dict, product_name: str):
    """Out-of-band stock alert to a seller whose listing reached zero"""
    if contact.get("email"):
        subject, body = get_stock_alert_email(product_name)
        send_email(contact["email"], subject, body)
    if contact.get("phone"):
        _, message = stock_alert_message(product_name)
        send_sms(contact["phone"], f"{message} - LiveMart")
