"""Storage interfaces, filesystem and in-memory backends, and blob transfer helpers."""