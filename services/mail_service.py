from flask_mail import Message
from db.extensions import mail
from flask import current_app


def send_email(subject, recipients, body, html=None):
    """Send one message. Returns False (and logs) instead of raising."""
    msg = Message(subject, recipients=recipients)
    msg.body = body
    if html:
        msg.html = html

    try:
        mail.send(msg)
        current_app.logger.info("Mail Sent Successfully")
        return True
    except Exception as e:
        current_app.logger.error(f"Failed to send email: {e}")
        return False


STATUS_COPY = {
    "active": ("🟢 Your campaign is live", "is now live and playing on the selected kiosks."),
    "paused": ("⏸️ Your campaign is paused", "has been paused. It will not play until it is resumed."),
    "completed": ("✅ Your campaign has completed", "has finished its booked run. Thanks for advertising with us!"),
}


# =========================
# CAMPAIGN STATUS MAIL
# =========================
def campaign_status_mail(owner_email, campaign_name, booking_id, status, start_date=None, end_date=None):
    subject, sentence = STATUS_COPY.get(
        status, (f"Your campaign is now {status}", f"is now {status}.")
    )
    name = campaign_name or f"Campaign #{booking_id}"

    return send_email(
        subject=subject,
        recipients=[owner_email],
        body=f"{name} {sentence}",
        html=f"""
<!DOCTYPE html>
<html>
<body style="font-family:'Segoe UI',sans-serif;background-color:#f5f6f8;margin:0;padding:0;">
<div style="max-width:640px;margin:auto;background-color:#ffffff;border-radius:8px;overflow:hidden;">

    <div style="padding:30px;text-align:center;background-color:#111827;">
        <h2 style="color:#ffffff;margin:10px 0;">{subject}</h2>
    </div>

    <div style="padding:30px;color:#111827;">
        <p><strong>{name}</strong> {sentence}</p>

        <table style="width:100%;margin-top:20px;">
            <tr><td style="color:#6b7280;">Campaign ID</td><td>{booking_id}</td></tr>
            <tr><td style="color:#6b7280;">Status</td><td>{status}</td></tr>
            <tr><td style="color:#6b7280;">Start Date</td><td>{start_date or '-'}</td></tr>
            <tr><td style="color:#6b7280;">End Date</td><td>{end_date or '-'}</td></tr>
        </table>
    </div>

</div>
</body>
</html>
"""
    )
