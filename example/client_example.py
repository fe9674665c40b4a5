import asyncio

import httpx

from x402_exact.adapters.evm import LocalAccountSigner
from x402_exact.clients import Http402Client, display_amount, format_payment_amount
from x402_exact.engine.exceptions import PaymentRejected, QuoteMalformed, SignatureDenied

# Reads EVM_PRIVATE_KEY from the environment or .env
signer = LocalAccountSigner()


async def main():
    async with Http402Client(
        signer=signer,
        max_value=10_000,  # 0.01 USDC
        timeout=httpx.Timeout(60.0, read=120.0)
    ) as client:
        try:
            outcome = await client.fetch("GET", "http://localhost:8000/api/market-data")
        except SignatureDenied as e:
            print("Payment not signed:", e)
            return None
        except PaymentRejected as e:
            print("Server rejected the payment:", e.reason)
            return None
        except QuoteMalformed as e:
            print("Unusable quote:", e)
            return None

        if outcome.paid:
            print("Paid", format_payment_amount(display_amount(outcome.quote)))
        if outcome.settlement is not None:
            print("Settled in", outcome.settlement.transaction)
        return outcome.response


if __name__ == "__main__":
    response = asyncio.run(main())
    if response is not None:
        print("Response:", response.json())
