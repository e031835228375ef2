"""Booking domain - Reconciled booking creation, listing and cancellation"""
