"""Command line interface for testing RPC functionality"""
from config import load_settings_conf
from . import SolanaRPC, NodeConnectionError, NodeAuthError, SolanaRPCError

def test_rpc():
    """Test various RPC scenarios"""
    settings = load_settings_conf()
    client = SolanaRPC(settings['solana_rpc_url'], timeout=settings['rpc_timeout'])
    try:
        print("\nTesting valid commands:")
        print("-" * 50)

        print("1. Testing getSlot:")
        print(f"  Success! Current slot: {client.getSlot()}")

        print("\n2. Testing getLatestBlockhash:")
        blockhash = client.getLatestBlockhash({"commitment": settings['commitment']})
        print(f"  Success! Blockhash: {blockhash['value']['blockhash']}")
        print(f"  Valid until block height: {blockhash['value']['lastValidBlockHeight']}")

        print("\n3. Testing getBalance for seller wallet:")
        balance = client.getBalance(settings['seller_wallet'])
        print(f"  Success! Balance: {balance['value']} lamports")

        print("\nTesting error scenarios:")
        print("-" * 50)

        print("\n4. Testing getBalance with invalid address:")
        try:
            client.getBalance("not-an-address")
            print("  Error: Should have raised an exception!")
        except SolanaRPCError as e:
            print(f"  Success! Got expected error: {e}")

    except NodeConnectionError as e:
        print("\nFailed to connect to Solana node:")
        print(f"  {str(e)}")

    except NodeAuthError as e:
        print("\nAuthentication failed:")
        print(f"  {str(e)}")
        print("\nPlease check solana_rpc_url in settings.conf")

    except SolanaRPCError as e:
        print(f"\nSolana Error [{e.code}] in {e.method}:")
        print(f"  {str(e)}")

    finally:
        client.close()

if __name__ == "__main__":
    test_rpc()
