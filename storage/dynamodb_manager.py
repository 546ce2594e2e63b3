"""DynamoDB manager for travel record storage operations."""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.models import SyncResult, TravelRecord

logger = logging.getLogger(__name__)

RECORD_ATTRIBUTES = (
    ('timestamp', 'timestamp'),
    ('email', 'email'),
    ('name', 'name'),
    ('contact', 'contact'),
    ('travel_date', 'travelDate'),
    ('departure_time', 'departureTime'),
    ('place', 'place'),
    ('flight_train_number', 'flightTrainNumber'),
)


class DynamoDBManager:
    """Durable copy of the travel record set, replaced wholesale on change."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table (partition key: record_id)
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def load_all(self) -> List[TravelRecord]:
        """
        Load every stored record, in original feed order.

        Returns:
            List of TravelRecord objects
        """
        stored = self.get_all_records()
        ordered = sorted(stored.values(), key=lambda entry: entry[0])
        return [record for _, record in ordered]

    def get_all_records(self) -> Dict[str, Tuple[int, TravelRecord]]:
        """
        Retrieve all records from DynamoDB using Scan operation.

        Returns:
            Dictionary mapping record id to (feed position, TravelRecord)
        """
        logger.info("Scanning DynamoDB table for all travel records")
        records = {}

        try:
            response = self.table.scan()
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

            for item in items:
                entry = self._item_to_entry(item)
                if entry:
                    records[entry[1].id] = entry

            logger.info(f"Retrieved {len(records)} travel records from DynamoDB")
            return records

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

    def replace_all(self, records: Sequence[TravelRecord]) -> SyncResult:
        """
        Make the table hold exactly the given records.

        Only records whose content or position changed are rewritten.
        Repeated ids keep their first occurrence.

        Args:
            records: Current record set, in feed order

        Returns:
            SyncResult with counts of added, updated, deleted records
        """
        logger.info(f"Replacing stored travel records with {len(records)} records")
        errors = []

        try:
            existing = self.get_all_records()

            new_entries: Dict[str, Tuple[int, TravelRecord]] = {}
            for position, record in enumerate(records):
                new_entries.setdefault(record.id, (position, record))

            to_add = [
                entry for record_id, entry in new_entries.items()
                if record_id not in existing
            ]
            to_update = [
                entry for record_id, entry in new_entries.items()
                if record_id in existing and entry != existing[record_id]
            ]
            ids_to_delete = [
                record_id for record_id in existing
                if record_id not in new_entries
            ]

            logger.info(
                f"Sync plan: {len(to_add)} to add, "
                f"{len(to_update)} to update, "
                f"{len(ids_to_delete)} to delete"
            )

            added_count = 0
            updated_count = 0
            deleted_count = 0

            if to_add or to_update:
                write_count = self.batch_write_records(to_add + to_update)
                added_count = min(write_count, len(to_add))
                updated_count = write_count - added_count

            if ids_to_delete:
                deleted_count = self.batch_delete_records(ids_to_delete)

            logger.info(
                f"Sync complete: {added_count} added, {updated_count} updated, "
                f"{deleted_count} deleted"
            )

            return SyncResult(
                added=added_count,
                updated=updated_count,
                deleted=deleted_count,
                errors=errors
            )

        except (ClientError, BotoCoreError) as e:
            error_msg = f"Error during sync operation: {e}"
            logger.error(error_msg)
            errors.append(error_msg)
            return SyncResult(added=0, updated=0, deleted=0, errors=errors)

    def batch_write_records(self, entries: List[Tuple[int, TravelRecord]]) -> int:
        """
        Write records to DynamoDB in batches of 25 items.

        Args:
            entries: List of (feed position, TravelRecord) pairs

        Returns:
            Count of successfully written records
        """
        if not entries:
            return 0

        logger.info(f"Writing {len(entries)} travel records to DynamoDB")
        success_count = 0

        for i in range(0, len(entries), self.BATCH_SIZE):
            batch = entries[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for position, record in batch:
                        writer.put_item(Item=self._record_to_item(position, record))
                        success_count += 1

            except (ClientError, BotoCoreError) as e:
                logger.error(
                    f"Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                continue

        logger.info(f"Successfully wrote {success_count} travel records")
        return success_count

    def batch_delete_records(self, record_ids: List[str]) -> int:
        """
        Delete records from DynamoDB in batches of 25 items.

        Args:
            record_ids: List of record IDs to delete

        Returns:
            Count of successfully deleted records
        """
        if not record_ids:
            return 0

        logger.info(f"Deleting {len(record_ids)} travel records from DynamoDB")
        success_count = 0

        for i in range(0, len(record_ids), self.BATCH_SIZE):
            batch = record_ids[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for record_id in batch:
                        writer.delete_item(Key={'record_id': record_id})
                        success_count += 1

            except (ClientError, BotoCoreError) as e:
                logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                continue

        logger.info(f"Successfully deleted {success_count} travel records")
        return success_count

    def _item_to_entry(self, item: dict) -> Optional[Tuple[int, TravelRecord]]:
        """
        Convert DynamoDB item to a (position, TravelRecord) pair.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Pair, or None if conversion fails
        """
        try:
            record = TravelRecord(
                id=item['record_id'],
                **{
                    attribute: str(item.get(key, ''))
                    for attribute, key in RECORD_ATTRIBUTES
                }
            )
            return int(item['position']), record
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Failed to convert item to TravelRecord: {e}")
            return None

    def _record_to_item(self, position: int, record: TravelRecord) -> dict:
        """
        Convert TravelRecord to DynamoDB item.

        Args:
            position: Index of the record in the feed
            record: TravelRecord object

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'record_id': record.id,
            'position': position,
        }
        for attribute, key in RECORD_ATTRIBUTES:
            item[key] = getattr(record, attribute)
        return item
