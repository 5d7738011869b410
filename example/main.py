import asyncio

from extend_client import ExtendClient, PollingConfig, PollingTimeoutError, RunFailedError
from extend_client.schema import array, currency, date, enum, extend_schema, integer, object, string
from mock_server import MockExtendServer


async def status_changed(run):
    print(f"Run {run.id} status changed to: {run.status}")


async def main():
    PORT = 8000
    server = MockExtendServer(completion_time=20.0, error_rate=0.1)
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    invoice = extend_schema(
        {
            "invoice_number": string().describe("The invoice number"),
            "invoice_date": date().describe("The invoice date"),
            "total": currency().describe("Total amount due"),
            "status": enum("paid", "unpaid"),
            "line_items": array(
                object({"description": string(), "quantity": integer()})
            ).describe("Line items"),
        }
    )

    config = PollingConfig(
        fast_poll_duration_ms=5000,
        fast_poll_interval_ms=500,
        initial_delay_ms=1000,
        max_delay_ms=8000,
        max_wait_ms=60000,
    )

    async with ExtendClient(
        token="sk_local", base_url=f"http://localhost:{PORT}", polling_config=config
    ) as client:
        try:
            run = await client.extract_runs.create_and_poll(
                {
                    "file": {"url": "https://example.com/invoice.pdf"},
                    "config": {"schema": invoice, "baseProcessor": "extraction_performance"},
                },
                throw_on_failure=True,
                on_status_change=status_changed,
            )
            print(f"Final status: {run.status}")
        except PollingTimeoutError as e:
            print(f"Polling timed out: {e}")
        except RunFailedError as e:
            print(f"Run {e.run_id} failed: {e.failure_message}")
        except Exception as e:
            print(f"Error occurred: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
