#!/usr/bin/env python3
import os
import sys
import argparse
import base64
import requests
from pathlib import Path

API_BASE = os.getenv('API_BASE', 'http://127.0.0.1:8000')


def parse_rect(value):
    """'x,y,w,h' in normalized units -> rect dict"""
    try:
        x, y, w, h = (float(v) for v in value.split(','))
    except ValueError:
        raise argparse.ArgumentTypeError(f'expected x,y,w,h but got {value!r}')
    return {'x': x, 'y': y, 'width': w, 'height': h}


def main(argv=None):
    parser = argparse.ArgumentParser(description='Render region thumbnails for an image')
    parser.add_argument('--image', required=True, help='Image URL or path on the API host')
    parser.add_argument('--rect', type=parse_rect, action='append', required=True,
                        help='Normalized rect x,y,w,h (repeatable)')
    parser.add_argument('--out-dir', default='assets/outputs/regions', help='Where to write PNGs')
    parser.add_argument('--upload', action='store_true', help='Upload thumbnails to KIE instead')

    args = parser.parse_args(argv)

    payload = {
        'image_url': args.image.replace('\\', '/'),
        'regions': [
            {'id': f'rect_{i + 1}', 'type': 'rect', 'rect': rect}
            for i, rect in enumerate(args.rect)
        ],
    }

    print(f'POST {API_BASE}/regions/thumbnails')
    print(f'Regions: {len(payload["regions"])}')

    try:
        response = requests.post(
            f'{API_BASE}/regions/thumbnails',
            params={'upload': 'true'} if args.upload else None,
            json=payload,
            timeout=60
        )
        response.raise_for_status()
        result = response.json()
    except requests.exceptions.RequestException as e:
        print(f'Error: {e}')
        return 1

    out_dir = Path(args.out_dir)
    for region in result.get('regions', []):
        url = region.get('thumbnailUrl') or ''
        if url.startswith('data:'):
            out_dir.mkdir(parents=True, exist_ok=True)
            dst = out_dir / f"{region['id']}.png"
            dst.write_bytes(base64.b64decode(url.partition(',')[2]))
            print(f'  {region["id"]} -> {dst.as_posix()}')
        else:
            print(f'  {region["id"]} -> {url}')

    if result.get('failed'):
        print(f'{result["failed"]} region(s) failed')
    return 0


if __name__ == '__main__':
    sys.exit(main())
