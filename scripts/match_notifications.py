# Script that matches finalized messages against interest zones and records/delivers notifications
from argparse import ArgumentParser
import json
import logging
from pathlib import Path

from geosynth.notifications import DuckDBMatchStore, MessageSnapshot, match_and_notify, parse_zone
from geosynth.settings import settings

logger = logging.getLogger(__name__)

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    parser = ArgumentParser()
    parser.add_argument('messages', type=Path, help='JSON list of {"id", "geoJson", "text"} objects')
    parser.add_argument('interests', type=Path, help='JSON list of {"id", "userId", "coordinates", "radius"} objects')
    parser.add_argument('--db', type=Path, default=settings.match_db_path)
    parser.add_argument('--quiet', '-q', action='store_true')
    args = parser.parse_args()

    raw_messages = json.loads(args.messages.read_text(encoding='utf-8'))
    raw_zones = json.loads(args.interests.read_text(encoding='utf-8'))

    messages = []
    for raw in raw_messages:
        if not isinstance(raw, dict) or not raw.get('id'):
            logger.warning(f'Skipping message without an id: {str(raw)[:80]}')
            continue
        messages.append(MessageSnapshot.from_geojson(raw['id'], raw.get('geoJson'), raw.get('text', '')))
    zones = [parse_zone(z, source=str(args.interests)) for z in raw_zones]

    store = DuckDBMatchStore(args.db)
    try:
        counts = match_and_notify(messages, zones, store, progress=not args.quiet)
    finally:
        store.close()

    print(json.dumps(counts))
