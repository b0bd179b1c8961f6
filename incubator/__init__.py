"""
Incubator Backend

Resilient Solana RPC access layer for the token incubation campaign:
- Load-balanced, rate-limited RPC connection management with failover
- Cached token balance lookups with stale-on-error fallback
- Depositor leaderboard reconstructed from transaction history
- Periodic refresh tasks for display consumers
"""

__version__ = "0.1.0"
