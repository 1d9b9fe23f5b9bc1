from prometheus_client import Counter, Histogram

NAMESPACE = "syncer"

# avg. run should be ~20s, an initial sync may take ~120s
SYNC_RUN_DURATION_SECONDS = Histogram(
    "sync_run_duration_seconds",
    "Histogram for duration and total number of sync runs",
    namespace=NAMESPACE,
    buckets=(10, 15, 20, 25, 30, 40, 50, 60, 90, 120, 190, 240, 300),
)

READ_ENDPOINT_DATA = Counter(
    "read_endpoint_data",
    "Total count of endpoint data read from all sources",
    namespace=NAMESPACE,
)

DATA_UPLOADED_TO_SHEET = Counter(
    "synced_datapoints",
    "Total count of datapoints written to the Google spreadsheet, by outcome",
    ["status"],
    namespace=NAMESPACE,
)
