"""Email notifications for portfolio and brand monitoring alerts."""

import logging
import smtplib
from datetime import date
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from jinja2 import Template

from .config import SmtpConfig
from .models import DerivedAlert, MonitoringAlert

logger = logging.getLogger(__name__)

PRIORITY_COLORS = {
    "critical": "#9b2c2c",
    "high": "#e53e3e",
    "medium": "#dd6b20",
    "low": "#38a169",
}

ALERT_TEMPLATE = Template("""
<!DOCTYPE html>
<html>
<head>
<style>
  body { font-family: Arial, sans-serif; color: #333; max-width: 700px; margin: 0 auto; }
  .header { background: #1a365d; color: white; padding: 20px; border-radius: 8px 8px 0 0; }
  .content { padding: 20px; border: 1px solid #e2e8f0; border-top: none; border-radius: 0 0 8px 8px; }
  .alert-card { background: #f7fafc; border: 1px solid #e2e8f0; border-radius: 8px; padding: 16px; margin: 12px 0; }
  .label { font-weight: bold; color: #4a5568; font-size: 13px; }
  .value { color: #1a202c; margin-bottom: 8px; }
  .priority { display: inline-block; color: white; padding: 2px 8px; border-radius: 4px; font-size: 12px; font-weight: bold; }
  h3 { color: #1a365d; margin-top: 24px; }
  .footer { font-size: 12px; color: #a0aec0; margin-top: 20px; padding-top: 12px; border-top: 1px solid #e2e8f0; }
</style>
</head>
<body>
<div class="header">
  <h2 style="margin:0;">{{ title }}</h2>
  <p style="margin:4px 0 0 0; opacity:0.9;">{{ subtitle }}</p>
</div>
<div class="content">
{% if derived %}
  <h3>Deadlines and Expiries</h3>
  {% for alert in derived %}
  <div class="alert-card" style="border-left: 4px solid {{ colors.get(alert.priority, '#718096') }};">
    <span class="priority" style="background: {{ colors.get(alert.priority, '#718096') }};">{{ alert.priority | upper }}</span>
    <div class="label">{{ alert.source_type | capitalize }}</div>
    <div class="value">{{ alert.source_name }}</div>
    <div class="value">{{ alert.message }}</div>
  </div>
  {% endfor %}
{% endif %}

{% if monitoring %}
  <h3>Brand Monitoring</h3>
  {% for alert in monitoring %}
  <div class="alert-card" style="border-left: 4px solid {{ colors.get(alert.priority, '#718096') }};">
    <span class="priority" style="background: {{ colors.get(alert.priority, '#718096') }};">{{ alert.priority | upper }}</span>
    <div class="label">{{ alert.monitoring_item_name }}{% if alert.platform %} &middot; {{ alert.platform }}{% endif %}</div>
    <div class="value">{{ alert.title }}</div>
    {% if alert.description %}<div class="value">{{ alert.description }}</div>{% endif %}
    {% if alert.suggested_action %}
    <div class="label">Suggested Action</div>
    <div class="value">{{ alert.suggested_action }}</div>
    {% endif %}
  </div>
  {% endfor %}
{% endif %}

  <div class="footer">
    <p>IP Tracker — automated deadline and brand monitoring</p>
    <p>To change alert thresholds or turn off these emails, update your alert settings.</p>
  </div>
</div>
</body>
</html>
""")


class EmailNotifier:
    """Sends alert emails via SMTP."""

    def __init__(self, config: SmtpConfig):
        self.config = config

    def send_alert_digest(self, derived: list[DerivedAlert], monitoring: list[MonitoringAlert]) -> bool:
        """Send one email summarising current deadline and monitoring alerts.

        Returns:
            True if the email was sent (or there was nothing to send).
        """
        count = len(derived) + len(monitoring)
        if not count:
            return True

        critical = sum(1 for a in [*derived, *monitoring] if a.priority == "critical")
        subject = f"IP Tracker: {count} active alert{'s' if count > 1 else ''}"
        if critical:
            subject += f" ({critical} critical)"

        html = ALERT_TEMPLATE.render(
            title=f"{count} Active Alert{'s' if count > 1 else ''}",
            subtitle=f"Portfolio status on {date.today().strftime('%B %d, %Y')}",
            derived=derived,
            monitoring=monitoring,
            colors=PRIORITY_COLORS,
        )
        return self._send_email(subject, html)

    def send_monitoring_alerts(self, item_name: str, alerts: list[MonitoringAlert]) -> bool:
        """Send the alerts raised by one monitoring check."""
        if not alerts:
            return True

        count = len(alerts)
        subject = f"Brand Monitoring: {count} new alert{'s' if count > 1 else ''} for {item_name}"
        html = ALERT_TEMPLATE.render(
            title=f"New Findings for {item_name}",
            subtitle=f"{count} alert{'s' if count > 1 else ''} raised on {date.today().strftime('%B %d, %Y')}",
            derived=[],
            monitoring=alerts,
            colors=PRIORITY_COLORS,
        )
        return self._send_email(subject, html)

    def send_test_email(self) -> bool:
        """Send a test email to verify configuration."""
        subject = "IP Tracker — Test Email"
        html = """
        <html><body>
        <h2>IP Tracker Test</h2>
        <p>If you received this email, your notification settings are configured correctly.</p>
        <p>You will receive alerts for upcoming expiries, matter deadlines and brand monitoring findings.</p>
        </body></html>
        """
        return self._send_email(subject, html)

    def _send_email(self, subject: str, html_body: str) -> bool:
        """Send an HTML email to all configured recipients."""
        if not self.config.enabled:
            logger.info("Email notifications disabled in config")
            return True

        if not self.config.recipients:
            logger.warning("No email recipients configured")
            return False

        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = self.config.user
            msg["To"] = ", ".join(self.config.recipients)
            msg.attach(MIMEText(html_body, "html"))

            server = smtplib.SMTP(self.config.host, self.config.port)
            if self.config.use_tls:
                server.starttls()

            server.login(self.config.user, self.config.password)
            server.sendmail(self.config.user, self.config.recipients, msg.as_string())
            server.quit()

            logger.info(f"Email sent: '{subject}' to {len(self.config.recipients)} recipients")
            return True

        except smtplib.SMTPException as e:
            logger.error(f"Failed to send email: {e}")
            return False
