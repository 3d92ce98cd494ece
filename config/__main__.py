"""Command line interface for testing configuration loading"""
from . import load_settings_conf, SettingsError
from pathlib import Path

def main():
    """Display loaded configuration"""
    try:
        settings_conf = load_settings_conf()
    except SettingsError as e:
        print(f"\n{e}")
        settings_conf = None

    if settings_conf:
        print("\nSettings Configuration:")
        print("-" * 50)
        for key, value in settings_conf.items():
            if key == 'jwt_secret' and value:
                value = '********'
            print(f"{key}: {value}")

    # Save example configuration file
    examples_dir = Path("examples")
    examples_dir.mkdir(exist_ok=True)

    with open(examples_dir / "settings.conf.example", "w") as f:
        f.write("""[DEFAULT]
# Database connection URL
db_url = postgresql://root@localhost:26257/margo?sslmode=disable
# Solana JSON-RPC endpoint
solana_rpc_url = https://api.mainnet-beta.solana.com
# Wallet that receives every sale
seller_wallet = CF6ga312fCGHNoPYp7PdNV8DHjH4giJvFSXQyQTzYJta
# Leave empty to generate a random secret on every start
jwt_secret =
session_expiry_hours = 24
refresh_threshold_minutes = 5
challenge_max_age_seconds = 120
confirmation_poll_interval = 5
confirmation_timeout = 120
rpc_timeout = 10
commitment = confirmed
api_host = 0.0.0.0
api_port = 8000
""")

if __name__ == "__main__":
    main()
