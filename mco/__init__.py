"""MySQL Cluster Operator (MCO).

Watches MySQLCluster custom resources and converges the platform objects
behind each of them:
 - a read-write Service and a read-only Service
 - a StatefulSet running the MySQL instances (optionally seeded from a backup)

Reconciliation is serialized per cluster and runs in parallel across clusters.
Outcomes are written back to the resource status and to a local event journal.
"""
