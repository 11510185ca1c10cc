"""
Load test: fire many concurrent seat-lock requests at a running app and check that
no seat ever ends up with two live locks or a lock on a booked seat.

Usage:
1. Start the app: uvicorn busbook.main:app
2. Run this script:
   python tests/load/booking_stress_test.py

Environment variables:
- APP_URL (default http://localhost:8000)
- CONCURRENT_REQUESTS (default 1000)
- SEAT_COUNT (default 40)

The script will:
- Create a bus with `SEAT_COUNT` seats through the API
- Fire `CONCURRENT_REQUESTS` lock attempts on random seats, each from a distinct passenger
- Confirm a handful of the winning locks
- Report success/conflict/error counts and lock latency percentiles
- Read the bus back and verify every seat has at most one live lock and booked seats carry none
"""

import asyncio
import os
import random
import statistics
import time
from collections import Counter
from datetime import date, timedelta

import httpx

APP_URL = os.environ.get('APP_URL', 'http://localhost:8000')
CONCURRENT = int(os.environ.get('CONCURRENT_REQUESTS', '1000'))
SEAT_COUNT = int(os.environ.get('SEAT_COUNT', '40'))


async def create_bus(client):
    payload = {
        'busName': f'Stress {random.randint(1000, 9999)}',
        'source': 'Pune',
        'destination': 'Mumbai',
        'date': (date.today() + timedelta(days=1)).isoformat(),
        'departureTime': '08:00',
        'arrivalTime': '11:30',
        'price': 450,
        'totalSeats': SEAT_COUNT,
    }
    resp = await client.post('/buses', json=payload)
    resp.raise_for_status()
    return resp.json()['id']


async def attempt_lock(client, bus_id, n):
    seat = random.randint(1, SEAT_COUNT)
    body = {'seats': [seat], 'passengerName': f'P{n}', 'passengerEmail': f'p{n}@example.com'}
    t0 = time.perf_counter()
    resp = await client.post(f'/buses/lock/{bus_id}', json=body)
    latency_ms = (time.perf_counter() - t0) * 1000
    if resp.status_code == 200:
        return {'result': 'locked', 'seat': seat, 'email': body['passengerEmail'], 'latency': latency_ms}
    elif resp.status_code == 400:
        return {'result': 'conflict', 'seat': seat, 'latency': latency_ms}
    return {'result': f'error_{resp.status_code}', 'seat': seat, 'latency': latency_ms}


async def check_seat_map(client, bus_id):
    bus = (await client.get(f'/buses/{bus_id}')).json()
    per_seat = Counter(lock['seatNumber'] for lock in bus['seatLocks'])
    double_locked = {seat: n for seat, n in per_seat.items() if n > 1}
    locked_and_booked = sorted(set(per_seat) & set(bus['seatsBooked']))
    return double_locked, locked_and_booked


async def main():
    async with httpx.AsyncClient(base_url=APP_URL, timeout=30.0) as client:
        bus_id = await create_bus(client)
        print('Bus id:', bus_id, 'seats:', SEAT_COUNT)

        print(f'Running {CONCURRENT} concurrent lock attempts...')
        start = time.perf_counter()
        results = await asyncio.gather(*[attempt_lock(client, bus_id, n) for n in range(CONCURRENT)])
        print('Completed in %.2fs' % (time.perf_counter() - start))

        counts = Counter(r['result'] for r in results)
        print('Result counts:', dict(counts))
        latencies = [r['latency'] for r in results]
        if len(latencies) > 1:
            print('latency ms: mean=%.2f p50=%.2f p95=%.2f max=%.2f' % (statistics.mean(latencies), statistics.median(latencies), statistics.quantiles(latencies, n=100)[94], max(latencies)))

        winners = [r for r in results if r['result'] == 'locked']
        if len({r['seat'] for r in winners}) != len(winners):
            print('Double-locks detected: the same seat was granted to two passengers')

        # confirm a few winners, bound to the passenger that holds each lock
        for r in winners[:5]:
            resp = await client.post(f'/buses/confirm/{bus_id}', json={'seats': [r['seat']], 'passengerEmail': r['email']})
            print('confirm seat', r['seat'], resp.status_code)

        double_locked, locked_and_booked = await check_seat_map(client, bus_id)
        if double_locked or locked_and_booked:
            print('Seat map inconsistent:', double_locked, locked_and_booked)
        else:
            print('No double locks detected')


if __name__ == '__main__':
    asyncio.run(main())
