"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY

# Payment metrics
try:
    payments_counter = Counter(
        'rewards_payments_total',
        'Total number of payment webhooks handled',
        ['status']
    )
except ValueError:
    payments_counter = REGISTRY._names_to_collectors.get('rewards_payments_total')

# Voucher metrics
try:
    redemptions_counter = Counter(
        'rewards_voucher_redemptions_total',
        'Total number of voucher redemption attempts',
        ['result']
    )
except ValueError:
    redemptions_counter = REGISTRY._names_to_collectors.get('rewards_voucher_redemptions_total')

try:
    vouchers_issued_counter = Counter(
        'rewards_vouchers_issued_total',
        'Total number of vouchers issued'
    )
except ValueError:
    vouchers_issued_counter = REGISTRY._names_to_collectors.get('rewards_vouchers_issued_total')

# RCON metrics
try:
    rcon_commands_counter = Counter(
        'rewards_rcon_commands_total',
        'Total number of RCON commands sent',
        ['status']
    )
except ValueError:
    rcon_commands_counter = REGISTRY._names_to_collectors.get('rewards_rcon_commands_total')

# Ledger metrics
try:
    storage_errors_counter = Counter(
        'rewards_storage_errors_total',
        'Total number of ledger read/write failures',
        ['collection']
    )
except ValueError:
    storage_errors_counter = REGISTRY._names_to_collectors.get('rewards_storage_errors_total')
