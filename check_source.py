#!/usr/bin/env python3
"""
Diagnostic script to watch a harvest of one blog through a running server.
"""
import json
import sys

import requests

# Configuration
API_URL = "http://127.0.0.1:5005"


def parse_frames(lines):
    """Group raw event-stream lines into (event, data) pairs."""
    event, data = None, []
    for line in lines:
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data.append(line[len("data:"):].strip())
        elif not line and event:
            yield event, json.loads("\n".join(data)) if data else {}
            event, data = None, []


def stream_harvest(blog_url, keywords=None, since=None):
    """Stream a harvest, printing each event as it arrives."""
    params = {"url": blog_url}
    if keywords:
        params["keywords"] = json.dumps(keywords, ensure_ascii=False)
    if since:
        params["since"] = since

    try:
        response = requests.get(f"{API_URL}/harvest/stream", params=params, stream=True)
    except requests.exceptions.RequestException as e:
        print(f"Error connecting to API: {e}")
        return None

    with response:
        lines = response.iter_lines(decode_unicode=True)
        for event, data in parse_frames(line or "" for line in lines):
            if event == "blog":
                print(f"  Blog: {data.get('sourceDisplayName')}")
            elif event == "count":
                print(f"  {data.get('message')}")
            elif event == "progress":
                print(f"  [{data.get('percent'):>3}%] {data.get('title')}")
            elif event == "post":
                content = data.get("content", "")
                print(f"         {len(content)} chars, {data.get('date')}")
            elif event == "complete":
                if data.get("warning"):
                    print(f"  ⚠️  {data['warning']}")
                return data
            elif event == "error":
                print(f"  ❌ {data.get('message')}: {data.get('error')}")
                return None
    return None


def main():
    if len(sys.argv) < 2:
        print("Usage: check_source.py <blog url> [keyword ...]")
        return 1

    blog_url, keywords = sys.argv[1], sys.argv[2:]

    print("=" * 70)
    print("Blog Harvest Diagnostic")
    print("=" * 70)

    print(f"\n🌐 Harvesting {blog_url}...")
    result = stream_harvest(blog_url, keywords)

    if result is None:
        print("  Make sure the server is running: python -m uvicorn harvester.server:app --port 5005")
        return 1

    posts = result.get("posts", [])
    empty = [p for p in posts if p.get("content", "").startswith("Could not retrieve")]
    print(f"\n  Posts harvested: {len(posts)}")
    print(f"  Posts without content: {len(empty)}")
    for post in empty:
        print(f"    - {post.get('postUrl')}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
