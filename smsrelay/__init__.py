"""smsrelay - forward SMS, missed calls and device state from a Termux host to Telegram."""

__version__ = "0.3.0"
__logo__ = "📨"
