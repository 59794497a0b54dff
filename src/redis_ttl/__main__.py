from redis_ttl.cli import app

if __name__ == "__main__":
    app(prog_name="redis-ttl")
