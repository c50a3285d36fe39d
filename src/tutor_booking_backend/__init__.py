"""
Tutor Booking Backend.

Scheduling and credit-reservation engine for one-on-one tutoring: slot
generation, ad-hoc bookings, recurring contracts, blackout handling and
the per (student, tutor) credit ledger. The FastAPI app lives in main.py.
"""
