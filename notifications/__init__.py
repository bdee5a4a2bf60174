"""Outbound notification clients (SMTP, Telegram)."""
