# Script that geocodes one message's location extraction and prints its GeoJSON FeatureCollection
from argparse import ArgumentParser
import json
import logging
import sys
from pathlib import Path

from geosynth.boundary import filter_features, load_boundary
from geosynth.extraction import parse_extraction
from geosynth.geocoding import InMemoryGeocodeCache
from geosynth.pipeline import MessageGeometryPipeline
from geosynth.settings import settings
from geosynth.utils.errors import DataValidationError

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s', stream=sys.stderr)

    parser = ArgumentParser()
    parser.add_argument('extraction', type=Path, help='JSON file with responsible_entity, pins and streets')
    parser.add_argument('--strategy', choices=['batch', 'split'], default=settings.strategy)
    parser.add_argument('--centerline', choices=['network', 'routing', 'straight'], default=settings.centerline_source)
    parser.add_argument('--boundary', '-b', type=Path, default=None, help='GeoJSON boundary to keep features within')
    parser.add_argument('--output', '-o', type=Path, default=None)
    parser.add_argument('--quiet', '-q', action='store_true')
    args = parser.parse_args()

    run_settings = settings.model_copy(update={'strategy': args.strategy, 'centerline_source': args.centerline})

    try:
        extraction = parse_extraction(json.loads(args.extraction.read_text(encoding='utf-8')), source=str(args.extraction))
    except DataValidationError as e:
        print(e, file=sys.stderr)
        print(e.summary(), file=sys.stderr)
        sys.exit(2)

    cache = InMemoryGeocodeCache()
    pipeline = MessageGeometryPipeline.from_settings(run_settings, cache=cache)
    collection = pipeline.run(extraction, progress=not args.quiet)

    if collection is not None and args.boundary is not None:
        collection = filter_features(collection, load_boundary(args.boundary))

    if collection is None:
        logging.warning('No geometry could be produced for this message')
        sys.exit(1)

    payload = json.dumps(collection.to_geojson(), ensure_ascii=False, indent=2)
    if args.output:
        args.output.write_text(payload, encoding='utf-8')
        logging.info(f'Wrote {len(collection)} features to {args.output}')
    else:
        print(payload)
