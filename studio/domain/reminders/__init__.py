"""Reminder domain - Scheduled WhatsApp session reminders"""
