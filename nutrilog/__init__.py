"""Nutrilog: WhatsApp food and workout logging service."""
