"""
Gym class booking backend.

This package contains:
- Telegram bot for members and the coach (`gym_booking.bot`)
- Shared configuration and utilities (`gym_booking.core`)
- Document storage, Supabase integration and models (`gym_booking.db`)
- Session materialization and the capacity-safe booking ledger (`gym_booking.booking`)
- In-app and web push notifications (`gym_booking.notifications`)
"""
