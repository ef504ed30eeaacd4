"""Domain layer (pure logic).

- Deck construction, dealing and the Bhabi Thola rules live here.
- Avoid I/O: no DB sessions, no HTTP/FastAPI, no Redis, no scheduler.
- Randomness is injectable (pass a numpy Generator) so tests stay deterministic.
"""
