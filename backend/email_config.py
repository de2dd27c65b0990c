"""
Email Configuration Module
Provides centralized email sending over SMTP and the notification sink used
by the donation, registration, billing and contact flows.
"""

import os
import smtplib
from email.message import EmailMessage
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid
from flask import render_template, has_app_context
import logging

logger = logging.getLogger(__name__)

# Base site URL for email links (configurable via .env)
SITE_BASE_URL = os.environ.get("SITE_BASE_URL", "https://thejre.org").rstrip('/')
ORG_NAME = os.environ.get("ORG_NAME", "The JRE")


def render_email_template(template_name: str, **context):
    """
    Safely render an email template, creating app context if needed.

    Background tasks run outside any request, so a bare app is created to
    reach the templates directory next to this module.
    """
    context = {'site_base_url': SITE_BASE_URL, 'org_name': ORG_NAME, **context}
    if has_app_context():
        return render_template(template_name, **context)
    else:
        from flask import Flask
        app = Flask(__name__)
        with app.app_context():
            return render_template(template_name, **context)


def format_money(amount) -> str:
    return f"${float(amount or 0):,.2f}"


class EmailConfig:
    """Centralized email configuration using an SMTP relay"""

    SMTP_HOST = os.environ.get("SMTP_HOST", "smtp-relay.brevo.com")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USERNAME = os.environ.get("SMTP_USERNAME")
    SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD")
    SMTP_USE_TLS = os.environ.get("SMTP_USE_TLS", "true").lower() in ("1", "true", "yes")

    DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "noreply@thejre.org")
    DEFAULT_SENDER_NAME = os.environ.get("MAIL_DEFAULT_SENDER_NAME", ORG_NAME)
    CONTACT_RECIPIENT = os.environ.get("CONTACT_RECIPIENT", "office@thejre.org")

    @classmethod
    def is_configured(cls) -> bool:
        """Check if SMTP is properly configured"""
        return bool(cls.SMTP_HOST and cls.SMTP_USERNAME and cls.SMTP_PASSWORD)

    @classmethod
    def get_smtp_connection(cls):
        """
        Create and return an authenticated SMTP connection.

        Raises:
            RuntimeError: If SMTP is not configured
            smtplib.SMTPException: If connection or authentication fails
        """
        if not cls.is_configured():
            raise RuntimeError(
                "SMTP not configured. Please set SMTP_HOST, SMTP_USERNAME, and SMTP_PASSWORD environment variables."
            )

        try:
            server = smtplib.SMTP(cls.SMTP_HOST, cls.SMTP_PORT, timeout=10)

            if cls.SMTP_USE_TLS:
                server.starttls()

            server.login(cls.SMTP_USERNAME, cls.SMTP_PASSWORD)
            logger.info(f"SMTP connection established to {cls.SMTP_HOST}")
            return server

        except smtplib.SMTPException as e:
            logger.error(f"SMTP connection failed: {e}", exc_info=True)
            raise

    @classmethod
    def send_email(
        cls,
        to_email: str,
        subject: str,
        body: str,
        body_html: str = None,
        from_email: str = None,
        from_name: str = None,
        reply_to: str = None
    ) -> dict:
        """
        Send an email over SMTP.

        Returns:
            dict: {'success': True, 'id': message_id} or {'success': False, 'error': reason}
        """
        if not cls.is_configured():
            logger.warning(f"Email to {to_email} skipped: SMTP not configured")
            return {'success': False, 'error': 'Email not configured'}

        try:
            from_email = from_email or cls.DEFAULT_SENDER
            from_name = from_name or cls.DEFAULT_SENDER_NAME
            message_id = make_msgid(domain=from_email.split('@')[-1])

            if body_html:
                msg = MIMEMultipart('alternative')
                msg['Subject'] = subject
                msg['From'] = f"{from_name} <{from_email}>"
                msg['To'] = to_email
                msg['Message-ID'] = message_id
                if reply_to:
                    msg['Reply-To'] = reply_to

                # Plain text first, then HTML
                msg.attach(MIMEText(body, 'plain', 'utf-8'))
                msg.attach(MIMEText(body_html, 'html', 'utf-8'))
            else:
                msg = EmailMessage()
                msg.set_content(body)
                msg['Subject'] = subject
                msg['From'] = f"{from_name} <{from_email}>"
                msg['To'] = to_email
                msg['Message-ID'] = message_id
                if reply_to:
                    msg['Reply-To'] = reply_to

            with cls.get_smtp_connection() as server:
                server.send_message(msg)

            logger.info(f"Email sent successfully to {to_email}: {subject}")
            return {'success': True, 'id': message_id}

        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {e}", exc_info=True)
            return {'success': False, 'error': 'Failed to send email'}

    @classmethod
    def send_donation_confirmation(
        cls,
        to_email: str,
        name: str,
        amount: float,
        is_recurring: bool = False,
        sponsorship: str = None,
        transaction_id: str = None,
        next_charge_date: str = None
    ) -> dict:
        """Thank-you receipt for a one-time donation or a monthly charge"""
        subject = f"Thank you for your donation to {ORG_NAME}!"
        frequency = "monthly " if is_recurring else ""

        body = f"""
Dear {name},

Thank you for your {frequency}donation to {ORG_NAME}. Your generous support
helps us continue our programs for the community.

DONATION RECEIPT
------------------
Amount: {format_money(amount)}{' per month' if is_recurring else ''}
{'Dedication: ' + sponsorship if sponsorship else ''}
{'Transaction ID: ' + transaction_id if transaction_id else ''}
{'Next charge date: ' + next_charge_date if next_charge_date else ''}
------------------

Please keep this email for your tax records.

With gratitude,
{ORG_NAME}
        """

        body_html = render_email_template(
            'emails/donation_confirmation.html',
            name=name,
            amount=format_money(amount),
            is_recurring=is_recurring,
            sponsorship=sponsorship,
            transaction_id=transaction_id,
            next_charge_date=next_charge_date
        )

        return cls.send_email(to_email=to_email, subject=subject, body=body, body_html=body_html)

    @classmethod
    def send_registration_confirmation(
        cls,
        to_email: str,
        name: str,
        event_title: str,
        event_date: str,
        event_time: str,
        event_location: str,
        adults: int,
        kids: int,
        total: float,
        sponsorship: str = None,
        transaction_id: str = None,
        payment_status: str = None
    ) -> dict:
        """Confirmation of an event registration with what was paid"""
        subject = f"You're registered for {event_title}!"

        if payment_status == 'pending_check':
            payment_line = f"Amount due by check: {format_money(total)}"
        elif payment_status == 'free':
            payment_line = "No payment required"
        else:
            payment_line = f"Total paid: {format_money(total)}"

        body = f"""
Dear {name},

Thank you for registering for {event_title}.

EVENT DETAILS
------------------
Date: {event_date}
Time: {event_time}
Location: {event_location}

REGISTRATION
------------------
Adults: {adults}
Kids: {kids}
{'Sponsorship: ' + sponsorship if sponsorship else ''}
{payment_line}
{'Reference: ' + transaction_id if transaction_id else ''}

We look forward to seeing you!

{ORG_NAME}
        """

        body_html = render_email_template(
            'emails/registration_confirmation.html',
            name=name,
            event_title=event_title,
            event_date=event_date,
            event_time=event_time,
            event_location=event_location,
            adults=adults,
            kids=kids,
            payment_line=payment_line,
            sponsorship=sponsorship,
            transaction_id=transaction_id
        )

        return cls.send_email(to_email=to_email, subject=subject, body=body, body_html=body_html)

    @classmethod
    def send_honoree_notification(
        cls,
        to_email: str,
        honoree_name: str,
        donor_name: str,
        message: str = None
    ) -> dict:
        """Let someone know a gift was made in their honor (amount is not disclosed)"""
        subject = "A donation was made in your honor"

        body = f"""
Dear {honoree_name or 'Friend'},

{donor_name} has made a donation to {ORG_NAME} in your honor.
{('Their message: ' + message) if message else ''}

With warm wishes,
{ORG_NAME}
        """

        body_html = render_email_template(
            'emails/honoree_notification.html',
            honoree_name=honoree_name or 'Friend',
            donor_name=donor_name,
            message=message
        )

        return cls.send_email(to_email=to_email, subject=subject, body=body, body_html=body_html)

    @classmethod
    def send_contact_notification(
        cls,
        from_name: str,
        from_email: str,
        message: str,
        subject: str = None,
        from_phone: str = None
    ) -> dict:
        """Send contact form notification to the office"""
        email_subject = f"Contact Form: {subject or 'New Message'} from {from_name}"

        phone_line = f"Phone: {from_phone}\n" if from_phone else ""
        body = f"""
New contact form submission from the website:

Name: {from_name}
Email: {from_email}
{phone_line}
Subject: {subject or '(none)'}

Message:
{message}
        """

        body_html = render_email_template(
            'emails/contact_notification.html',
            from_name=from_name,
            from_email=from_email,
            from_phone=from_phone,
            subject=subject,
            message=message
        )

        return cls.send_email(
            to_email=cls.CONTACT_RECIPIENT,
            subject=email_subject,
            body=body,
            body_html=body_html,
            reply_to=from_email
        )


NOTIFICATION_KINDS = {
    'donation-confirmation': EmailConfig.send_donation_confirmation,
    'registration-confirmation': EmailConfig.send_registration_confirmation,
    'honoree-notice': EmailConfig.send_honoree_notification,
    'contact-form-alert': EmailConfig.send_contact_notification,
}


def notify(kind: str, payload: dict) -> dict:
    """
    Notification sink: send the email for a structured payload.

    Never raises; failures come back as {'success': False, 'error': ...}.
    """
    sender = NOTIFICATION_KINDS.get(kind)
    if not sender:
        logger.error(f"Unknown notification kind: {kind}")
        return {'success': False, 'error': 'Unknown notification kind'}

    try:
        return sender(**payload)
    except Exception as e:
        logger.error(f"Notification '{kind}' failed: {e}", exc_info=True)
        return {'success': False, 'error': str(e)}


def is_email_configured() -> bool:
    """Check if email is configured"""
    return EmailConfig.is_configured()
