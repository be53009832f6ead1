"""Record store — interface, adapters and typed entities.

The record store is the only shared mutable resource. Nothing above this
package caches records across requests; every operation re-reads.
"""
