"""
infra_reconciler

This package is a declarative reconciliation engine for cloud infrastructure.

We keep modules small and well separated:
core contains shared data structures, errors and logging setup
tasks contains the task contract, the diff driver and resource holders
graph contains dependency extraction and topological ordering
cloud contains the cloud client interface and an in memory cloud
targets contains the execution back-ends: api, terraform and dry run
engine contains the executor and the composition of a full run
validation contains cluster specification checks
cluster contains cluster specification sources
"""
