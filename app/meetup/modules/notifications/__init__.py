"""
Outbound notifications: SMTP email (logged to email_logs), Discord bot messages,
ICS attachments and the cron endpoints that drive reminders and digests.
"""
