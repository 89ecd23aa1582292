from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from collector.log_collector import LogParseError, LogParser, iter_lines
from config.settings import ConfigError, LOG_LEVELS, Settings, load_settings
from normalizer.normalizer import TimestampParseError, transform
from output.elasticsearch_output import ElasticsearchOutput, IndexingError, StdoutOutput

# --------------------------
# Logging
# --------------------------
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"
logger = logging.getLogger("accesslog2es")


def build_output(settings: Settings):
    if settings.dry_run:
        logger.info("Dry-run mode: writing bulk NDJSON to stdout")
        return StdoutOutput(index=settings.index, doc_type=settings.doc_type)
    return ElasticsearchOutput(
        nodes=settings.nodes,
        index=settings.index,
        doc_type=settings.doc_type,
        username=settings.username,
        password=settings.password,
        bulk_size=settings.bulk_size,
        verify_ssl=settings.verify_ssl,
    )


# --------------------------
# Orchestration: parse, transform, index
# --------------------------
def run_pipeline(settings: Settings, log_parser: Optional[LogParser] = None, output=None) -> int:
    """
    Index every line of settings.log, in file order, and return the number of documents.

    The first bad line aborts the run: nothing after it is read and the sink is not flushed.
    """
    log_parser = log_parser or LogParser()
    if output is None:
        output = build_output(settings)

    count = 0
    try:
        for lineno, line in iter_lines(settings.log):
            try:
                record = log_parser.parse(line)
                doc = transform(record, settings.vhost, settings.host)
            except (LogParseError, TimestampParseError) as exc:
                raise type(exc)(f"{settings.log}:{lineno}: {exc}") from exc
            output.send_log(doc)
            count += 1
            logger.debug("Queued line %d", lineno)
        output.flush()
    finally:
        output.close()

    logger.info("Indexed %d documents from %s into '%s'", count, settings.log, settings.index)
    return count


# --------------------------
# CLI
# --------------------------
def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(
        prog="accesslog2es",
        description="Parse an Apache access log file and create an Elasticsearch document per line",
    )
    p.add_argument("--host", help="Hostname, IP address or another identifier of the host the logfile is from")
    p.add_argument("--vhost", help="Virtual host the log file belongs to. Required.")
    p.add_argument("--log", help="Path to the log file. Required.")
    p.add_argument("--index", help="Name of the index that should be used. Defaults to <logs>.")
    p.add_argument("--type", dest="doc_type", help="Type to use for the documents. Defaults to <access_log_entry>.")
    p.add_argument("--nodes", nargs="+", action="extend",
                   help="Elasticsearch nodes that should be used. Defaults to <localhost:9200>.")
    p.add_argument("--config", help="YAML file with defaults for any of these options")
    p.add_argument("--username", help="Basic auth user for Elasticsearch (or ES_USERNAME)")
    p.add_argument("--password", help="Basic auth password for Elasticsearch (or ES_PASSWORD)")
    p.add_argument("--bulk-size", type=int, help="Documents per bulk request. Defaults to 500.")
    p.add_argument("--no-verify-ssl", dest="verify_ssl", action="store_false", default=None,
                   help="Do not verify TLS certificates of the nodes")
    p.add_argument("--dry-run", action="store_true", default=None,
                   help="Print the bulk NDJSON to stdout instead of indexing")
    p.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, help="Defaults to INFO")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level or logging.INFO, format=LOG_FORMAT)

    try:
        settings = load_settings(args)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    logging.getLogger().setLevel(settings.log_level)

    logger.info("Importing %s for vhost %s", settings.log, settings.vhost)
    try:
        run_pipeline(settings)
    except (LogParseError, TimestampParseError) as exc:
        logger.error("Aborting, malformed input: %s", exc)
        return 1
    except IndexingError as exc:
        logger.error("Aborting, indexing failed: %s", exc)
        return 1
    except OSError as exc:
        logger.error("Aborting, cannot read %s: %s", settings.log, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
