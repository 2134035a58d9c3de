"""
Example: Basic Oracle trigger based CDC

This example imports one table as a mapping, enables change logging,
runs the initial load and then polls for changes, printing every record.
"""

import time

from oracle_cdc_connect import (
    ChangeSink,
    MappingStore,
    OracleClient,
    OracleDiscovery,
    OracleProducer,
    ProducerConfig,
)


class PrintingSink(ChangeSink):
    """Sink writing each record to stdout."""

    def get_or_create_output_stream(self, name):
        return name

    def emit(self, stream, schema, record, change_kind):
        print(f"[{stream}] {schema.name} {change_kind.value}: {record}")

    def begin_delta_transaction(self, watermark):
        print(f"-- delta up to SCN {watermark}")

    def commit_delta_transaction(self):
        print("-- delta committed")

    def begin_initial_load_transaction(self, watermark, mapping_name):
        print(f"-- initial load of {mapping_name} as of SCN {watermark}")

    def commit_initial_load_transaction(self, row_count):
        print(f"-- initial load committed, {row_count} rows")

    def abort_transaction(self):
        print("-- transaction aborted")


def main():
    client = OracleClient(
        host="localhost",
        port=1521,
        service_name="FREEPDB1",
        user="cdc",
        password="cdc"
    )

    # Create a mapping with all columns of SALES.ORDERS
    store = MappingStore("mappings")
    discovery = OracleDiscovery(client)
    if not store.exists("SALES_ORDERS"):
        mapping = discovery.build_table_mapping("SALES", "ORDERS")
        store.write(mapping)

    config = ProducerConfig(
        name="orders_producer",
        topic_name="orders",
        mapping_names=["SALES_ORDERS"],
        mapping_directory="mappings",
    )
    producer = OracleProducer(config, client, PrintingSink(), store=store)

    try:
        # Creates the change log table and the triggers where missing
        producer.start_change_logging()

        watermark = producer.get_current_transaction_id()
        producer.execute_initial_load("SALES_ORDERS", watermark)

        for _ in range(6):
            watermark = producer.poll(watermark)
            time.sleep(config.poll_interval)

        producer.execute_periodic_task()
    finally:
        producer.close()


if __name__ == "__main__":
    main()
