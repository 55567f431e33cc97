"""Fiscal invoice issuance for confirmed bookings (Vendus)."""
