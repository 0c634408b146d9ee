# urlshortener

A small HTTP service that turns long URLs into short ones, redirects
visitors to the original address and keeps per-link click analytics
(device type, country, recent clicks). A link can be given an expiry in
days. After that it stops resolving.

## Installing

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Running the service

```
urlshortener
```

The command takes no options apart from `--help`. The server listens on
all interfaces on port 8080. On SIGINT or SIGTERM it shuts down and allows
up to ten seconds for the shutdown to finish. The command exits with
status 1 in these cases:

- the configuration cannot be loaded
- the database cannot be opened or migrated
- the server fails
- shutdown takes longer than ten seconds

### Configuration

All settings come from environment variables:

| Variable         | Default                 | Meaning                                          |
|------------------|-------------------------|--------------------------------------------------|
| `DATA_DIR`       | `./data`                | Directory for the SQLite database and GeoIP data; created if missing |
| `BASE_URL`       | `http://localhost:8080` | Prefix used when building the returned short URLs |
| `REDIS_URL`      | unset                   | Redis to connect to at start-up; `redis://` is added if the URL has no scheme |
| `REDIS_PASSWORD` | empty                   | Recorded in the configuration (`RedisConfig.password`) |

Links and clicks are stored in `DATA_DIR/urlshortener.db`. The tables are
created on start-up.

When `REDIS_URL` is set, the service connects to that Redis and pings it. If
it cannot connect, it logs a warning and carries on without Redis.

Country and city lookups read a MaxMind DB file at
`DATA_DIR/geoip/GeoLite2-City.mmdb`. The package has its own reader for this
file format. When the file is missing, the service still runs, but the
location fields of recorded clicks stay empty.

## HTTP API

| Method | Path               | Description                                              |
|--------|--------------------|----------------------------------------------------------|
| GET    | `/health`          | `{"status": "healthy", "time": "<RFC 3339 time>"}`       |
| POST   | `/shorten`         | Create a short link                                      |
| GET    | `/<short_id>`      | 301 redirect to the original URL                         |
| GET    | `/analytics`       | Analytics for `?short_id=...`                            |
| POST   | `/analytics/click` | Record a click for `?short_id=...`                       |
| GET    | `/`, `/static/...` | Static files from `/app/static` (`index.html` at `/`)    |

Every response carries permissive CORS headers. `OPTIONS` requests get
`204`. An unhandled error gives `500` with the body
`{"error": "Internal Server Error", "message": "An unexpected error occurred"}`.

### Shortening a link

```
curl -X POST http://localhost:8080/shorten \
     -H 'Content-Type: application/json' \
     -d '{"url": "https://example.com/some/long/path", "expiration_days": 7}'
```

```json
{
  "short_url": "http://localhost:8080/Ab3dE_9z",
  "long_url": "https://example.com/some/long/path",
  "expires_at": "..."
}
```

- `url` is required and must be an absolute URL or an absolute path.
- `expiration_days` is optional. Zero, a negative number or leaving it out means the link never expires.
- Short IDs are eight random URL-safe characters.
- An invalid body or URL gives `400`.
- An unknown or expired short ID gives `404`.

### Analytics

`POST /analytics/click?short_id=...` stores a click. The click records:

- the `User-Agent` header
- the client address, taken from `X-Forwarded-For` if that header is present
- a device type: `mobile`, `tablet`, `desktop`, or `unknown` when no user agent is sent
- location data, when the GeoIP file is present

`GET /analytics?short_id=...` returns:

- `total_clicks`: the number of recorded clicks
- `device_stats`: click counts per device type
- `country_stats`: the ten countries with the most clicks
- `recent_clicks`: the ten most recent clicks, newest first

## Using it as a library

```python
from urlshortener.config import load
from urlshortener.app import build_server

server = build_server(load())
server.start()          # blocks; call server.shutdown() from another thread
```

`Server` also accepts `port`, `static_dir` and `host`. Its Flask application
is available as `server.app`.

`URLService` and `AnalyticsService` can be used on their own. Open a
database with `urlshortener.storage.open_database`, prepare it with
`urlshortener.storage.run_migrations`, and pass the connection in:

```python
from urlshortener.config import DatabaseConfig, SQLiteConfig
from urlshortener.storage import open_database, run_migrations
from urlshortener.url_service import URLService

db = open_database(DatabaseConfig(sqlite=SQLiteConfig(path=":memory:")))
run_migrations(db.sqlite)
urls = URLService(db.sqlite)
record = urls.create_short_url("https://example.com/page")
assert urls.get_long_url(record.short_id) == "https://example.com/page"
```

`get_long_url` raises `URLNotFoundError`, or `URLExpiredError` for an
expired link. Database failures raise `StorageError`.

`URLService` also provides:

- `detect_device_type`
- `check_geo_fencing`: uses a small built-in address table and refuses `RU` and `CN`
- `check_rate_limit`: allows 60 requests per address per minute

`urlshortener.middleware` provides `RateLimiter` and `rate_limit_middleware`,
which answers `429` once a client is over its limit. `logging_middleware`
and `recovery_middleware` are also in that module.

## What it does not do

- Redis is only connected and pinged. Nothing is stored in it or read from it.
- Rate limiting and geo-fencing are not applied to the HTTP routes. To
  rate-limit requests, wrap `server.app.wsgi_app` with `rate_limit_middleware`.
- A redirect does not record a click. Clicks are recorded only through
  `POST /analytics/click`.
- No GeoIP database is included. Without one, clicks carry no location.