"""
YouTube Uploader - Main CLI
===========================

Upload a video to YouTube with a resumable session, wait for processing,
and print embeddable HTML.

Usage:
    python orchestrator.py ./talk.mp4 --title "My talk" --tags "conference,python"

Flow:
    1. Obtain an access token (flag, YT_ACCESS_TOKEN, or Google credentials)
    2. Show the signed-in channel
    3. Upload with a progress bar (resumes automatically on server errors)
    4. Poll processing status until processed/failed
    5. Print the watch URL and embed HTML
"""

import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from tqdm import tqdm

from yt_upload import (
    UploadOrchestrator,
    UploadError,
    YTError,
    build_embed_html,
    fetch_my_channel,
    get_access_token,
    watch_url,
)
from yt_upload.status_poller import PollUpdate
from yt_upload.youtube_api import embed_html_of


def _print_status(update: PollUpdate) -> None:
    if update.error:
        print(f"⚠️  Status check failed: {update.error} (retrying)")
    elif update.status == "uploaded":
        print(f"   Upload status: {update.status}")
        print(f"   Preview:       {watch_url(update.resource_id)}")
    elif update.succeeded:
        print("\n✅ Final status: processed")
        html = embed_html_of(update.resource)
        if html:
            print(f"\n{html}\n")
    else:
        print(f"\n❌ Transcoding failed (status: {update.status})")


def main():
    import argparse

    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Resumable YouTube uploader",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upload and wait for processing
  python orchestrator.py talk.mp4 --title "My talk" --description "Recorded live" --tags "python,talk"

  # Upload in 8 MiB chunks without waiting for processing
  python orchestrator.py talk.mp4 --title "My talk" --chunk-size 8388608 --no-wait

  # Print embed HTML for an existing video link
  python orchestrator.py --embed "https://vimeo.com/123456"
        """
    )

    parser.add_argument(
        "file",
        nargs="?",
        help="Video file to upload"
    )
    parser.add_argument(
        "--title",
        default=None,
        help="Video title (default: file name)"
    )
    parser.add_argument(
        "--description",
        default="",
        help="Video description"
    )
    parser.add_argument(
        "--tags",
        default=None,
        help="Comma-separated tags"
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Bytes per request (default: YT_UPLOAD_CHUNK_SIZE or whole file)"
    )
    parser.add_argument(
        "--replace",
        default=None,
        help="ID of an existing resource to replace"
    )
    parser.add_argument(
        "--token",
        default=None,
        help="OAuth2 access token (default: YT_ACCESS_TOKEN or Google credentials)"
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Don't poll for processing status after upload"
    )
    parser.add_argument(
        "--retry-initiation",
        action="store_true",
        help="Also retry the session-creation request on server/network errors"
    )
    parser.add_argument(
        "--embed",
        default=None,
        help="Only print embed HTML for a video URL"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Verbose output"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.embed:
        html = build_embed_html(args.embed)
        if not html:
            print(f"❌ Not a known video link: {args.embed}")
            sys.exit(1)
        print(html)
        sys.exit(0)

    if not args.file:
        parser.error("a video file is required (or use --embed URL)")

    path = Path(args.file)
    if not path.is_file():
        print(f"❌ File not found: {path}")
        sys.exit(1)

    # 1) Credentials
    try:
        token = get_access_token(args.token)
    except Exception as e:
        print(f"❌ Error obtaining access token: {e}")
        sys.exit(1)

    # 2) Signed-in channel
    try:
        ch = fetch_my_channel(token)
        print(f"\n📺 Uploading as: {ch['title']} ({ch['channel_id']})")
    except YTError as e:
        print(f"⚠️  Could not load channel info: {e}")

    # 3) Upload
    size = path.stat().st_size
    print(f"\n⬆️  Uploading {path.name} ({size} bytes)...")
    bar = tqdm(total=size, unit="B", unit_scale=True, desc="Uploading")

    def on_progress(sent: int, total: int) -> None:
        bar.total = total
        bar.n = sent
        bar.refresh()

    def on_complete(video_id: str) -> None:
        bar.close()
        print(f"\n✅ Uploaded! Video ID: {video_id}")
        print(f"   URL: {watch_url(video_id)}")
        if not args.no_wait:
            print(f"\n⏳ Waiting for processing...")

    kwargs = {}
    if args.chunk_size is not None:
        kwargs["chunk_size"] = args.chunk_size

    orch = UploadOrchestrator(
        token,
        on_progress=on_progress,
        on_complete=on_complete,
        on_status=_print_status,
        poll_status=not args.no_wait,
        retry_initiation=args.retry_initiation,
        **kwargs,
    )

    try:
        video_id = orch.upload(
            path,
            title=args.title or path.stem,
            description=args.description,
            tags=args.tags,
            replace_video_id=args.replace,
        )
    except UploadError as e:
        bar.close()
        print(f"\n❌ Upload failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        orch.cancel()
        bar.close()
        print("\nAborted.")
        sys.exit(130)

    # 4) Embed snippet
    html = build_embed_html(watch_url(video_id))
    print(f"\n🔗 Embed HTML:\n{html}\n")

    last = orch.last_status
    if last is not None and last.terminal and not last.succeeded:
        sys.exit(2)


if __name__ == "__main__":
    main()
