from prometheus_client import Counter, Histogram

# Seat lock metrics
SEAT_LOCK_LATENCY = Histogram("busbook_seat_lock_latency_seconds", "Latency for seat lock operations")
SEAT_LOCK_ATTEMPTS = Counter("busbook_seat_lock_attempts_total", "Total seat lock attempts", ["result"])
SEAT_UNLOCKS = Counter("busbook_seat_unlocks_total", "Seat lock entries removed by unlock requests")
EXPIRED_LOCKS_PRUNED = Counter("busbook_expired_locks_pruned_total", "Expired seat locks removed", ["path"])

# Optimistic concurrency on the bus row
SEAT_WRITE_RETRIES = Counter("busbook_seat_write_retries_total", "Bus writes retried after a version conflict")

# Confirmation and booking records
BOOKING_CONFIRMATIONS = Counter("busbook_booking_confirmations_total", "Seat confirmation attempts", ["result"])
BOOKINGS_CREATED = Counter("busbook_bookings_created_total", "Booking records created")
BOOKINGS_CANCELLED = Counter("busbook_bookings_cancelled_total", "Booking records cancelled")

# Retention sweep
BUSES_REMOVED = Counter("busbook_expired_buses_removed_total", "Buses deleted after their travel date", ["trigger"])
