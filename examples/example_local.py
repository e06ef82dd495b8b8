"""Example: Reading a zipped daily bar file from the local filesystem."""

from pathlib import Path
import tempfile
import zipfile

from subscription_transport import (
    SubscriptionDataSource,
    SubscriptionDataSourceReader,
    TransportMedium,
)

BARS = [
    "19920102 00:00,93800,96300,91300,94800,1002",
    "19920103 00:00,93900,96400,91400,94900,1003",
    "19920106 00:00,94000,96500,91500,95000,1006",
]

with tempfile.TemporaryDirectory() as directory:
    archive_path = Path(directory) / "000001.zip"
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("000001.csv", "\n".join(BARS) + "\n")

    reader = SubscriptionDataSourceReader()
    stream = reader.create_stream_reader(
        SubscriptionDataSource(f"{archive_path}#000001.csv", TransportMedium.LOCAL_FILE)
    )

    if stream is None:
        print("No data for source")
    else:
        with stream:
            while not stream.end_of_stream:
                print(stream.read_line())
