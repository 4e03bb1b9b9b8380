"""Cluster node provider driving the docker CLI."""