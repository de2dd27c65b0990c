from flask import Blueprint, request, jsonify
import logging

from database import get_db, EmailSignup
from validators import clean_text, clean_multiline, is_valid_email
from background import run_in_background
from email_config import notify
from sheets_sync import sync_contact

logger = logging.getLogger(__name__)
contact_bp = Blueprint("contact_api", __name__, url_prefix="/api")


@contact_bp.route("/contact", methods=["POST"])
def submit_contact():
    """
    Handle contact form submissions.

    Expects JSON:
      - name (required)
      - email (required)
      - message (required)
      - subject (optional)
      - phone (optional)

    Stores the submission, then mirrors it to the sheet and alerts the office.
    """
    try:
        data = request.get_json(silent=True) or {}

        # Single-line fields are stripped of newlines to prevent email header injection
        name = clean_text(data.get("name"))
        email = clean_text(data.get("email"))
        phone = clean_text(data.get("phone"))
        subject = clean_text(data.get("subject"))
        message = clean_multiline(data.get("message") or data.get("content"))

        if not name or not email or not message:
            return (
                jsonify(
                    {
                        "success": False,
                        "error": "Name, email, and message are required",
                    }
                ),
                400,
            )

        if not is_valid_email(email):
            return jsonify({"success": False, "error": "Invalid email format"}), 400

        db = next(get_db())
        try:
            signup = EmailSignup(
                name=name,
                email=email,
                phone=phone or None,
                subject=subject or None,
                message=message,
                source="contact_form",
            )
            db.add(signup)
            db.commit()
            db.refresh(signup)
            signup_data = signup.to_dict()
        except Exception as e:
            db.rollback()
            logger.error(f"Contact API: Failed to save submission from {email}: {e}", exc_info=True)
            return jsonify({"success": False, "error": "Failed to save contact submission"}), 500
        finally:
            db.close()

        logger.info(f"Contact API: Submission {signup_data['id']} from {name} <{email}> stored")

        run_in_background(f"sheets:contact:{signup_data['id']}", sync_contact, signup_data)
        run_in_background(
            "contact-form-alert",
            notify,
            "contact-form-alert",
            {
                "from_name": name,
                "from_email": email,
                "from_phone": phone or None,
                "subject": subject or None,
                "message": message,
            },
        )

        return jsonify({"success": True, "id": signup_data["id"]})
    except Exception as exc:  # noqa: BLE001
        logger.exception("Contact API: Unexpected error handling contact form: %s", exc)
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Internal server error",
                }
            ),
            500,
        )
