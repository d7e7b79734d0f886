"""Closed set of Redis commands the facade knows how to dispatch."""

from enum import Enum


class Command(str, Enum):
    PING = "PING"

    # Strings / keys
    GET = "GET"
    SET = "SET"
    DEL = "DEL"
    MGET = "MGET"
    INCRBY = "INCRBY"
    EXPIRE = "EXPIRE"
    RENAMENX = "RENAMENX"

    # Hashes
    HGET = "HGET"
    HGETALL = "HGETALL"
    HMGET = "HMGET"
    HMSET = "HMSET"
    HSETNX = "HSETNX"
    HDEL = "HDEL"
    HINCRBY = "HINCRBY"

    # Sets
    SADD = "SADD"
    SREM = "SREM"
    SMEMBERS = "SMEMBERS"
    SRANDMEMBER = "SRANDMEMBER"
    SPOP = "SPOP"

    # Sorted sets
    ZADD = "ZADD"
    ZCARD = "ZCARD"
    ZRANGE = "ZRANGE"
    ZRANGEBYSCORE = "ZRANGEBYSCORE"

    # Lists
    LPUSH = "LPUSH"
    RPUSH = "RPUSH"
    LPOP = "LPOP"
    RPOP = "RPOP"
    LLEN = "LLEN"
    LRANGE = "LRANGE"
    LREM = "LREM"
    RPOPLPUSH = "RPOPLPUSH"
    BRPOPLPUSH = "BRPOPLPUSH"
