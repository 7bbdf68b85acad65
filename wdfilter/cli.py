import click
import logging
import os
import shutil
import signal
import sys

from wdfilter import settings
from wdfilter.cancellation import CancellationToken
from wdfilter.errors import PipelineCancelled
from wdfilter.errors import PipelineError
from wdfilter.filters import FilterProcess
from wdfilter.filters import OUTPUT_FORMATS
from wdfilter.filters import jq_command
from wdfilter.pipeline import run_pipeline
from wdfilter.readers.dumpreader import WikidataDumpReader
from wdfilter.readers.source import DownloadSource
from wdfilter.sink import OutputSink
from wdfilter.utils import dump_url

logger = logging.getLogger(__name__)

def _run(token, action):
    """
    Runs an action, turning pipeline errors into exit statuses.
    SIGTERM cancels the run like Ctrl-C does.
    """
    previous = signal.signal(signal.SIGTERM, lambda signum, frame: token.cancel('received SIGTERM'))
    try:
        return action()
    except PipelineError as e:
        logger.error(str(e))
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        token.cancel('interrupted')
        logger.error(str(PipelineCancelled(token.reason)))
        sys.exit(PipelineCancelled.exit_code)
    finally:
        signal.signal(signal.SIGTERM, previous)

@click.group()
def cli():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(name)-12s %(levelname)-8s %(message)s')
    pass

@click.command()
@click.option('-i', '--input', 'input_file', default=None, help='Wikidata dump (.json.bz2) to read, "-" for the standard input.')
@click.option('-o', '--output', default=None, help='File to write the filtered entities to (default is stdout).')
@click.option('-f', '--force', is_flag=True, help='Overwrite the output file if it exists.')
@click.option('-j', '--jq-filter', default='', help='jq filter, applied to EACH entity of the dump.')
@click.option('-c', '--continue-on-error', is_flag=True, help='Output null for entities the filter fails on instead of stopping.')
@click.option('-d', '--download', is_flag=True, help='Read the dump while downloading it.')
@click.option('--resume', is_flag=True, help='Resume an interrupted download from its .part file.')
@click.option('--url', default=None, help='URL of the dump to download.')
@click.option('--version', 'dump_version', default=None, help='Version of the dump to download (default: latest).')
@click.option('--format', 'output_format', type=click.Choice(OUTPUT_FORMATS), default='ndjson', help='Output format of the filter.')
def filter(input_file, output, force, jq_filter, continue_on_error, download, resume, url, dump_version, output_format):
    """
    Streams every entity of a Wikidata dump through a jq filter.
    """
    if not download and input_file is None:
        raise click.UsageError('An input dump is required unless --download is given.')
    if download and input_file is not None:
        raise click.UsageError('--input and --download cannot be used together.')
    if resume and not download:
        raise click.UsageError('--resume only applies to --download.')
    if input_file not in (None, '-') and not os.path.isfile(input_file):
        raise click.UsageError('Input dump "{}" does not exist.'.format(input_file))
    if output is not None and os.path.exists(output) and not force:
        raise click.UsageError('Output file "{}" already exists, use --force to overwrite it.'.format(output))

    token = CancellationToken()
    if download:
        url = url or dump_url(dump_version)

    if not jq_filter:
        logger.info('No filter provided')
        if download:
            _run(token, lambda: DownloadSource(url, token, resume=resume).download())
        return

    command = jq_command(jq_filter, output_format, continue_on_error)
    if shutil.which(command[0]) is None:
        raise click.UsageError('Filter program "{}" not found.'.format(command[0]))

    reader = WikidataDumpReader.open(token, fname=input_file, url=url if download else None, resume=resume)
    sink = OutputSink(output)
    _run(token, lambda: run_pipeline(reader, FilterProcess(command), sink, token))

@click.command()
@click.option('--url', default=None, help='URL of the dump to download.')
@click.option('--version', 'dump_version', default=None, help='Version of the dump to download (default: latest).')
@click.option('--resume', is_flag=True, help='Resume an interrupted download from its .part file.')
@click.option('-o', '--directory', default=None, help='Directory to download to (default is {}).'.format(settings.DOWNLOAD_DIR))
def download(url, dump_version, resume, directory):
    """
    Downloads a Wikidata dump without filtering it.
    """
    token = CancellationToken()
    source = DownloadSource(url or dump_url(dump_version), token, directory=directory, resume=resume)
    path = _run(token, source.download)
    click.echo(path)

cli.add_command(filter)
cli.add_command(download)

if __name__ == '__main__':
    cli()
