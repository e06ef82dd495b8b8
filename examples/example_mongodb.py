"""Example: Streaming daily bars for one symbol from MongoDB."""

from subscription_transport import (
    SubscriptionDataSource,
    SubscriptionDataSourceReader,
    TransportMedium,
)

source = SubscriptionDataSource(
    "000001.SZ",
    TransportMedium.MONGODB,
    (
        ("date", "19920101 00:00:00"),
        ("ticker", "000001 2S1"),
        ("market", "sz"),
        ("ticktype", "Trade"),
        ("resolution", "Daily"),
        ("PeriodStart", "19920102"),
        ("PeriodFinish", "19920209"),
    ),
)

# Connection parameters come from SUBSCRIPTION_TRANSPORT_MONGO_HOST / _PORT
reader = SubscriptionDataSourceReader()
reader.add_invalid_source_handler(lambda event: print(f"Invalid source: {event.error}"))

for line in reader.read_lines(source):
    print(line)
