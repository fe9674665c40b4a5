from x402_exact.engine.events import SettleFailedEvent, SettleSuccessEvent, VerifyFailedEvent
from x402_exact.servers import FacilitatorClient, Http402Server

# payTo comes from EVM_ADDRESS, the facilitator URL from X402_FACILITATOR_URL
app = Http402Server(
    network="eip155:8453",
    facilitator=FacilitatorClient(),
    title="x402 Market Data API",
)


# Optional: Add event hooks for custom logic
@app.hook(VerifyFailedEvent)
async def on_verify_failed(event, deps):
    print(f"Payment rejected ({event.status.value}): {event.error_message}")


@app.hook(SettleSuccessEvent)
async def on_settle_success(event, deps):
    print(f"Settled: {event.settlement.transaction}")


@app.hook(SettleFailedEvent)
async def on_settle_failed(event, deps):
    print(f"Settlement failed: {event.error_message}")


@app.get("/api/market-data")
@app.payment_required("$0.001", description="Market analytics snapshot")
async def get_market_data(request, payment):
    """This endpoint requires payment to access."""
    return {
        "data": "This is premium content",
        "payer": payment.authorization.from_,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="localhost", port=8000, log_level="info")
