"""
Telegram front-end.

``commands`` holds the platform-independent register/lookup operations;
``telegram_card_bot`` maps Telegram updates onto them.
"""
