#!/usr/bin/env python3
"""
AWS ECR Storage Cost Report

This script estimates the monthly storage cost of the container images hosted in
Amazon ECR. For every repository in the account/region it:
  - Loads all image details, following the API pagination tokens.
  - Ignores images pushed during the current calendar month (UTC), since a
    partial month skews a monthly estimate.
  - Sums the size of the remaining images and of the N most recent ones (--cap).
  - Converts both sums into a monthly dollar estimate.

The report is printed to stdout, one row per repository, sorted by the size of the
latest image (largest first):

    name  last pushed  latest size  hosted images  monthly cost  capped monthly cost

In tsv mode the columns are aligned and a final line carries the totals.
In csv mode plain comma-separated lines are printed and no totals line is added.

Cost model:
  size in GB * 0.65 (compression) * $0.10 per GB-month
  https://aws.amazon.com/ecr/pricing/
The compression factor is an approximation; treat the numbers as an estimate,
not as billing data.

Usage:
    python ecr_cost_report.py
    python ecr_cost_report.py --region us-east-1 --format csv --cap 3

Dependencies:
    - boto3 (install via pip install boto3)
    - AWS credentials configured (aws configure, AWS_PROFILE, ...)
"""

import argparse
import csv
import datetime
import sys
from collections import namedtuple

import boto3
import botocore.exceptions

# ------------------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------------------

MAX_RESULTS = 1000  # largest page ECR accepts

GIB = 1024 * 1024 * 1024
COMPRESSION_FACTOR = 0.65
PRICE_PER_GB_MONTH = 0.10  # USD

DEFAULT_CAP = 2
FORMATS = ('tsv', 'csv')

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

RepoSummary = namedtuple(
    'RepoSummary',
    [
        'name',
        'latest_pushed_at',
        'latest_image_size',
        'aggregate_image_size',
        'recent_image_size',
        'hosted_images',
    ],
)

ReportRow = namedtuple(
    'ReportRow',
    [
        'name',
        'last_pushed',
        'latest_image_size',
        'hosted_images',
        'monthly_cost',
        'monthly_capped_cost',
    ],
)

# ------------------------------------------------------------------------------
# ECR API calls
# ------------------------------------------------------------------------------

def list_repositories(client, page_token=None):
    """Fetch one page of repositories. Returns (repositories, next_token)."""
    kwargs = {'maxResults': MAX_RESULTS}
    if page_token:
        kwargs['nextToken'] = page_token
    response = client.describe_repositories(**kwargs)
    return response.get('repositories', []), response.get('nextToken')


def list_images(client, repository_name, page_token=None):
    """Fetch one page of image details for a repository. Returns (images, next_token)."""
    kwargs = {'repositoryName': repository_name, 'maxResults': MAX_RESULTS}
    if page_token:
        kwargs['nextToken'] = page_token
    response = client.describe_images(**kwargs)
    return response.get('imageDetails', []), response.get('nextToken')


def load_all(list_page):
    """
    Collect every item of a paginated listing.

    :param list_page: callable taking a page token (None for the first page) and
                      returning (items, next_token).
    :return: list of all items, in the order the pages returned them.
    """
    items = []
    next_token = None
    while True:
        page, next_token = list_page(next_token)
        items.extend(page)
        if not next_token:
            break
    return items

# ------------------------------------------------------------------------------
# Image ranking and cost model
# ------------------------------------------------------------------------------

def month_start(now=None):
    """First instant of the current calendar month in UTC. `now` must be timezone-aware."""
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError(f"timezone-aware datetime required: {now!r}")
    now = now.astimezone(datetime.timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def pushed_at(image):
    return image.get('imagePushedAt') or EPOCH


def image_size(image):
    return image.get('imageSizeInBytes') or 0


def rank_images(images, cutoff):
    """
    Drop images pushed at or after the cutoff and order the rest most recent first.

    Images without a push timestamp count as pushed at the epoch.
    """
    kept = [image for image in images if pushed_at(image) < cutoff]
    return sorted(kept, key=pushed_at, reverse=True)


def summarize_repository(name, images, cutoff, cap=DEFAULT_CAP):
    ranked = rank_images(images, cutoff)
    sizes = [image_size(image) for image in ranked]
    latest = ranked[0] if ranked else None
    return RepoSummary(
        name=name,
        latest_pushed_at=latest.get('imagePushedAt') if latest else None,
        latest_image_size=sizes[0] if sizes else 0,
        aggregate_image_size=sum(sizes),
        recent_image_size=sum(sizes[:cap]),
        hosted_images=len(ranked),
    )


def storage_cost(size_in_bytes):
    # Storage is $0.10 per GB-month, applied to the compressed size
    return size_in_bytes / GIB * COMPRESSION_FACTOR * PRICE_PER_GB_MONTH


def monthly_cost(repo):
    """Estimated monthly cost of every image kept in the repository."""
    return storage_cost(repo.aggregate_image_size)


def monthly_capped_cost(repo):
    """Estimated monthly cost if only the `cap` most recent images were kept."""
    return storage_cost(repo.recent_image_size)


def load_repositories(client, cap=DEFAULT_CAP, cutoff=None):
    """Summarize every ECR repository visible to the client, in listing order."""
    if cutoff is None:
        cutoff = month_start()

    repositories = load_all(lambda token: list_repositories(client, token))
    sys.stderr.write(f"Found {len(repositories)} repositories\n")

    repos = []
    for repo in repositories:
        repo_name = repo.get('repositoryName', '')
        sys.stderr.write(f"Processing repository: {repo_name}\n")
        images = load_all(lambda token: list_images(client, repo_name, token))
        repos.append(summarize_repository(repo_name, images, cutoff, cap))
    return repos

# ------------------------------------------------------------------------------
# Report
# ------------------------------------------------------------------------------

def format_timestamp(value):
    if value is None:
        return ''
    return value.astimezone(datetime.timezone.utc).strftime(TIMESTAMP_FORMAT)


def format_cost(cost):
    return f"${cost:.2f}"


def build_report(repos):
    """
    Turn repository summaries into report rows plus grand totals.

    Rows are sorted by latest image size, largest first; repositories with equal
    sizes keep their listing order.

    :return: (rows, total_cost, total_capped_cost)
    """
    rows = []
    total_cost = 0.0
    total_capped_cost = 0.0
    for repo in sorted(repos, key=lambda r: r.latest_image_size, reverse=True):
        cost = monthly_cost(repo)
        capped_cost = monthly_capped_cost(repo)
        rows.append(ReportRow(
            name=repo.name,
            last_pushed=format_timestamp(repo.latest_pushed_at),
            latest_image_size=repo.latest_image_size,
            hosted_images=repo.hosted_images,
            monthly_cost=cost,
            monthly_capped_cost=capped_cost,
        ))
        total_cost += cost
        total_capped_cost += capped_cost
    return rows, total_cost, total_capped_cost


def row_cells(row):
    return [
        row.name,
        row.last_pushed,
        str(row.latest_image_size),
        str(row.hosted_images),
        format_cost(row.monthly_cost),
        format_cost(row.monthly_capped_cost),
    ]


def write_tsv(rows, total_cost, total_capped_cost, out=None):
    """Write aligned columns followed by a single totals line."""
    if out is None:
        out = sys.stdout
    lines = [row_cells(row) for row in rows]
    lines.append(['', '', '', '', format_cost(total_cost), format_cost(total_capped_cost)])

    widths = [max(len(line[i]) for line in lines) for i in range(len(lines[0]))]
    for line in lines:
        padded = [cell.ljust(width + 2) for cell, width in zip(line[:-1], widths)]
        out.write(''.join(padded) + line[-1] + '\n')
    out.flush()


def write_csv(rows, out=None):
    """Write one comma-separated line per repository (no totals line)."""
    if out is None:
        out = sys.stdout
    writer = csv.writer(out, lineterminator='\n')
    for row in rows:
        writer.writerow(row_cells(row))
    out.flush()

# ------------------------------------------------------------------------------
# Command line
# ------------------------------------------------------------------------------

def positive_int(value):
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid positive integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value!r}")
    return number


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Estimate the monthly storage cost of the images hosted in Amazon ECR."
    )
    parser.add_argument(
        "-f", "--format",
        help="Output format: aligned columns with totals (tsv) or comma-separated lines (csv).",
        choices=FORMATS,
        default="tsv"
    )
    parser.add_argument(
        "-c", "--cap",
        help="Number of most recent images used for the capped cost forecast.",
        type=positive_int,
        default=DEFAULT_CAP
    )
    parser.add_argument(
        "-r", "--region",
        help="AWS region to report on (defaults to the configured AWS region).",
        default=None
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    try:
        client = boto3.client('ecr', region_name=args.region)
        repos = load_repositories(client, cap=args.cap)
        rows, total_cost, total_capped_cost = build_report(repos)

        if args.format == 'csv':
            write_csv(rows)
        else:
            write_tsv(rows, total_cost, total_capped_cost)
    except (botocore.exceptions.BotoCoreError, botocore.exceptions.ClientError, OSError) as e:
        sys.stderr.write(f"Error generating ECR cost report: {e}\n")
        sys.exit(1)


if __name__ == '__main__':
    main()
