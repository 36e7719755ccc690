#!/usr/bin/env python3
import os
import sys
import argparse
import requests

API_BASE = os.getenv('API_BASE', 'http://127.0.0.1:8000')

def main(argv=None):
    parser = argparse.ArgumentParser(description='Render a circular avatar from a crop')
    parser.add_argument('--image', required=True, help='Image URL or path on the API host')
    parser.add_argument('--x', type=float, default=0, help='Crop left, percent')
    parser.add_argument('--y', type=float, default=0, help='Crop top, percent')
    parser.add_argument('--width', type=float, help='Crop width, percent')
    parser.add_argument('--height', type=float, help='Crop height, percent')
    parser.add_argument('--zoom', type=float, help='Legacy zoom (instead of width/height)')
    parser.add_argument('--size', type=int, default=128, help='Avatar size in pixels')
    parser.add_argument('--out', default='avatar.png', help='Output PNG')

    args = parser.parse_args(argv)

    crop = {'x': args.x, 'y': args.y}
    for key in ('width', 'height', 'zoom'):
        if getattr(args, key) is not None:
            crop[key] = getattr(args, key)

    payload = {'image_url': args.image.replace('\\', '/'), 'crop': crop, 'size': args.size}

    print(f'POST {API_BASE}/avatar/render')

    try:
        response = requests.post(f'{API_BASE}/avatar/render', json=payload, timeout=60)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        print(f'Error: {e}')
        return 1

    with open(args.out, 'wb') as f:
        f.write(response.content)
    print(f'Saved {args.out}')
    return 0

if __name__ == '__main__':
    sys.exit(main())
