"""SQL templates for the standard diagnostics.

Templates use positional psycopg2 placeholders. The first placeholder is
always the schema name; bloat and sequence checks take a percentage
threshold as the second. Literal percent signs are written ``%%``.

Object names are rendered through ``::regclass::text`` so that tables and
indexes outside the search path come back schema-qualified.
"""

from __future__ import annotations

BLOATED_INDEXES = """
    WITH index_stats AS (
        SELECT
            x.indrelid::regclass::text AS table_name,
            x.indexrelid::regclass::text AS index_name,
            pg_catalog.pg_relation_size(x.indexrelid) AS index_size,
            ic.relpages,
            ic.reltuples,
            current_setting('block_size')::numeric AS block_size,
            coalesce((
                SELECT sum(coalesce(s.avg_width, 1024))
                FROM pg_catalog.pg_attribute a
                JOIN pg_catalog.pg_stats s
                  ON s.schemaname = nsp.nspname
                 AND s.tablename = tc.relname
                 AND s.attname = a.attname
                WHERE a.attrelid = x.indrelid
                  AND a.attnum = ANY(x.indkey)
            ), 0) AS tuple_width
        FROM pg_catalog.pg_index x
        JOIN pg_catalog.pg_class ic ON ic.oid = x.indexrelid
        JOIN pg_catalog.pg_class tc ON tc.oid = x.indrelid
        JOIN pg_catalog.pg_namespace nsp ON nsp.oid = ic.relnamespace
        JOIN pg_catalog.pg_am am ON am.oid = ic.relam
        WHERE am.amname = 'btree'
          AND ic.relpages > 0
          AND nsp.nspname = %s::text
    ),
    estimates AS (
        -- 8 bytes of index tuple header, 4 bytes of line pointer, 90 fillfactor
        SELECT
            table_name,
            index_name,
            index_size,
            relpages,
            block_size,
            ceil(reltuples * (tuple_width + 12) / (block_size - 24) / 0.9)::bigint + 1
                AS expected_pages
        FROM index_stats
    )
    SELECT
        table_name,
        index_name,
        index_size,
        (greatest(relpages - expected_pages, 0) * block_size)::bigint AS bloat_size,
        round(100 * greatest(relpages - expected_pages, 0)::numeric / relpages, 2)::float8
            AS bloat_percentage
    FROM estimates
    WHERE 100 * greatest(relpages - expected_pages, 0)::numeric / relpages >= %s::numeric
    ORDER BY table_name, index_name;
"""

BLOATED_TABLES = """
    WITH table_stats AS (
        SELECT
            pc.oid::regclass::text AS table_name,
            pg_catalog.pg_table_size(pc.oid) AS table_size,
            pc.relpages,
            pc.reltuples,
            current_setting('block_size')::numeric AS block_size,
            coalesce((
                SELECT sum(s.avg_width)
                FROM pg_catalog.pg_stats s
                WHERE s.schemaname = nsp.nspname
                  AND s.tablename = pc.relname
            ), 0) AS tuple_width
        FROM pg_catalog.pg_class pc
        JOIN pg_catalog.pg_namespace nsp ON nsp.oid = pc.relnamespace
        WHERE pc.relkind IN ('r', 'm')
          AND pc.relpages > 0
          AND nsp.nspname = %s::text
    ),
    estimates AS (
        -- 24 bytes of heap tuple header, 4 bytes of line pointer, 24 bytes of page header
        SELECT
            table_name,
            table_size,
            relpages,
            block_size,
            ceil(reltuples * (tuple_width + 28) / (block_size - 24))::bigint + 1
                AS expected_pages
        FROM table_stats
    )
    SELECT
        table_name,
        table_size,
        (greatest(relpages - expected_pages, 0) * block_size)::bigint AS bloat_size,
        round(100 * greatest(relpages - expected_pages, 0)::numeric / relpages, 2)::float8
            AS bloat_percentage
    FROM estimates
    WHERE 100 * greatest(relpages - expected_pages, 0)::numeric / relpages >= %s::numeric
    ORDER BY table_name;
"""

DUPLICATED_INDEXES = """
    SELECT
        table_oid::regclass::text AS table_name,
        string_agg(
            'idx=' || index_oid::regclass::text
                || ', size=' || pg_catalog.pg_relation_size(index_oid),
            '; ' ORDER BY index_oid::regclass::text
        ) AS duplicated_indexes
    FROM (
        SELECT
            x.indexrelid AS index_oid,
            x.indrelid AS table_oid,
            x.indkey::text || ' ' || x.indclass::text || ' '
                || coalesce(pg_catalog.pg_get_expr(x.indexprs, x.indrelid), '') || ' '
                || coalesce(pg_catalog.pg_get_expr(x.indpred, x.indrelid), '') AS index_key
        FROM pg_catalog.pg_index x
        JOIN pg_catalog.pg_class pc ON pc.oid = x.indrelid
        JOIN pg_catalog.pg_namespace nsp ON nsp.oid = pc.relnamespace
        WHERE nsp.nspname = %s::text
    ) keys
    GROUP BY table_oid, index_key
    HAVING count(*) > 1
    ORDER BY table_name, duplicated_indexes;
"""

FOREIGN_KEYS_WITHOUT_INDEX = """
    SELECT
        c.conrelid::regclass::text AS table_name,
        c.conname::text AS constraint_name,
        array_agg(a.attname::text || ',' || a.attnotnull::text ORDER BY u.attposition)
            AS columns
    FROM pg_catalog.pg_constraint c
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = c.connamespace
    CROSS JOIN LATERAL unnest(c.conkey) WITH ORDINALITY AS u(attnum, attposition)
    JOIN pg_catalog.pg_attribute a
      ON a.attrelid = c.conrelid AND a.attnum = u.attnum
    WHERE c.contype = 'f'
      AND nsp.nspname = %s::text
      AND NOT EXISTS (
          SELECT 1
          FROM pg_catalog.pg_index pi
          WHERE pi.indrelid = c.conrelid
            AND (pi.indkey::int2[])[0:array_length(c.conkey, 1) - 1]
                OPERATOR(pg_catalog.@>) c.conkey
      )
    GROUP BY c.conrelid, c.conname, c.oid
    ORDER BY table_name, constraint_name;
"""

INDEXES_WITH_NULL_VALUES = """
    SELECT
        x.indrelid::regclass::text AS table_name,
        x.indexrelid::regclass::text AS index_name,
        pg_catalog.pg_relation_size(x.indexrelid) AS index_size,
        string_agg(a.attname::text, ', ' ORDER BY a.attnum) AS nullable_fields
    FROM pg_catalog.pg_index x
    JOIN pg_catalog.pg_class ic ON ic.oid = x.indexrelid
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = ic.relnamespace
    JOIN pg_catalog.pg_attribute a
      ON a.attrelid = x.indrelid AND a.attnum = ANY(x.indkey)
    WHERE NOT x.indisprimary
      AND NOT x.indisunique
      AND x.indpred IS NULL
      AND NOT a.attnotnull
      AND nsp.nspname = %s::text
    GROUP BY x.indrelid, x.indexrelid
    ORDER BY table_name, index_name;
"""

INTERSECTED_INDEXES = """
    WITH index_info AS (
        SELECT
            x.indrelid AS table_oid,
            x.indexrelid AS index_oid,
            x.indkey::text AS key_columns,
            coalesce(pg_catalog.pg_get_expr(x.indexprs, x.indrelid), '') AS expressions,
            coalesce(pg_catalog.pg_get_expr(x.indpred, x.indrelid), '') AS predicate
        FROM pg_catalog.pg_index x
        JOIN pg_catalog.pg_class pc ON pc.oid = x.indrelid
        JOIN pg_catalog.pg_namespace nsp ON nsp.oid = pc.relnamespace
        WHERE nsp.nspname = %s::text
    )
    SELECT
        a.table_oid::regclass::text AS table_name,
        'idx=' || a.index_oid::regclass::text
            || ', size=' || pg_catalog.pg_relation_size(a.index_oid)
            || '; idx=' || b.index_oid::regclass::text
            || ', size=' || pg_catalog.pg_relation_size(b.index_oid) AS duplicated_indexes
    FROM index_info a
    JOIN index_info b
      ON a.table_oid = b.table_oid AND a.index_oid < b.index_oid
    WHERE a.expressions = b.expressions
      AND a.predicate = b.predicate
      AND a.key_columns <> b.key_columns
      AND (b.key_columns LIKE a.key_columns || ' %%'
           OR a.key_columns LIKE b.key_columns || ' %%')
    ORDER BY table_name, duplicated_indexes;
"""

INVALID_INDEXES = """
    SELECT
        x.indrelid::regclass::text AS table_name,
        x.indexrelid::regclass::text AS index_name
    FROM pg_catalog.pg_index x
    JOIN pg_catalog.pg_class ic ON ic.oid = x.indexrelid
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = ic.relnamespace
    WHERE NOT x.indisvalid
      AND nsp.nspname = %s::text
    ORDER BY table_name, index_name;
"""

TABLES_WITH_MISSING_INDEXES = """
    SELECT
        psat.relid::regclass::text AS table_name,
        pg_catalog.pg_table_size(psat.relid) AS table_size,
        psat.seq_scan AS seq_scans,
        coalesce(psat.idx_scan, 0) AS index_scans
    FROM pg_catalog.pg_stat_all_tables psat
    WHERE psat.schemaname = %s::text
      AND psat.seq_scan > coalesce(psat.idx_scan, 0)
      AND pg_catalog.pg_relation_size(psat.relid)
          > 5 * current_setting('block_size')::bigint
    ORDER BY table_name;
"""

TABLES_WITHOUT_PRIMARY_KEY = """
    SELECT
        pc.oid::regclass::text AS table_name,
        pg_catalog.pg_table_size(pc.oid) AS table_size
    FROM pg_catalog.pg_class pc
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = pc.relnamespace
    WHERE pc.relkind IN ('r', 'p')
      AND NOT pc.relispartition
      AND nsp.nspname = %s::text
      AND NOT EXISTS (
          SELECT 1
          FROM pg_catalog.pg_constraint c
          WHERE c.conrelid = pc.oid AND c.contype = 'p'
      )
    ORDER BY table_name;
"""

UNUSED_INDEXES = """
    WITH foreign_key_indexes AS (
        SELECT i.indexrelid
        FROM pg_catalog.pg_constraint c
        JOIN pg_catalog.pg_index i
          ON i.indrelid = c.conrelid
         AND c.conkey OPERATOR(pg_catalog.<@) i.indkey::int2[]
        WHERE c.contype = 'f'
    )
    SELECT
        psai.relid::regclass::text AS table_name,
        psai.indexrelid::regclass::text AS index_name,
        pg_catalog.pg_relation_size(psai.indexrelid) AS index_size,
        psai.idx_scan AS index_scans
    FROM pg_catalog.pg_stat_all_indexes psai
    JOIN pg_catalog.pg_index i ON i.indexrelid = psai.indexrelid
    WHERE psai.schemaname = %s::text
      AND NOT i.indisunique
      AND psai.idx_scan < 50
      AND psai.indexrelid NOT IN (SELECT indexrelid FROM foreign_key_indexes)
    ORDER BY table_name, index_name;
"""

TABLES_WITHOUT_DESCRIPTION = """
    SELECT
        pc.oid::regclass::text AS table_name,
        pg_catalog.pg_table_size(pc.oid) AS table_size
    FROM pg_catalog.pg_class pc
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = pc.relnamespace
    WHERE pc.relkind IN ('r', 'p')
      AND NOT pc.relispartition
      AND nsp.nspname = %s::text
      AND coalesce(trim(pg_catalog.obj_description(pc.oid, 'pg_class')), '') = ''
    ORDER BY table_name;
"""

_TABLE_COLUMNS = """
    SELECT
        t.oid::regclass::text AS table_name,
        col.attname::text AS column_name,
        col.attnotnull AS column_not_null
    FROM pg_catalog.pg_class t
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = t.relnamespace
    JOIN pg_catalog.pg_attribute col ON col.attrelid = t.oid
    WHERE t.relkind IN ('r', 'p')
      AND NOT t.relispartition
      AND col.attnum > 0
      AND NOT col.attisdropped
      AND nsp.nspname = %s::text
"""

COLUMNS_WITHOUT_DESCRIPTION = _TABLE_COLUMNS + """
      AND coalesce(trim(pg_catalog.col_description(t.oid, col.attnum)), '') = ''
    ORDER BY table_name, column_name;
"""

COLUMNS_WITH_JSON_TYPE = _TABLE_COLUMNS + """
      AND col.atttypid = 'json'::regtype
    ORDER BY table_name, column_name;
"""

_SERIAL_COLUMNS = """
    SELECT
        t.oid::regclass::text AS table_name,
        col.attname::text AS column_name,
        col.attnotnull AS column_not_null,
        CASE col.atttypid
            WHEN 'int2'::regtype THEN 'smallserial'
            WHEN 'int4'::regtype THEN 'serial'
            ELSE 'bigserial'
        END AS column_type,
        pg_catalog.pg_get_serial_sequence(t.oid::regclass::text, col.attname::text)
            AS sequence_name
    FROM pg_catalog.pg_class t
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = t.relnamespace
    JOIN pg_catalog.pg_attribute col ON col.attrelid = t.oid
    JOIN pg_catalog.pg_attrdef ad ON ad.adrelid = col.attrelid AND ad.adnum = col.attnum
    WHERE t.relkind IN ('r', 'p')
      AND NOT t.relispartition
      AND col.attnum > 0
      AND NOT col.attisdropped
      AND col.atttypid IN ('int2'::regtype, 'int4'::regtype, 'int8'::regtype)
      AND pg_catalog.pg_get_expr(ad.adbin, ad.adrelid) LIKE 'nextval(%%'
      AND pg_catalog.pg_get_serial_sequence(t.oid::regclass::text, col.attname::text)
          IS NOT NULL
      AND nsp.nspname = %s::text
"""

_IN_PRIMARY_KEY = """
          SELECT 1
          FROM pg_catalog.pg_constraint c
          WHERE c.conrelid = t.oid
            AND c.contype = 'p'
            AND col.attnum = ANY(c.conkey)
"""

COLUMNS_WITH_SERIAL_TYPES = _SERIAL_COLUMNS + f"""
      AND NOT EXISTS ({_IN_PRIMARY_KEY})
    ORDER BY table_name, column_name;
"""

PRIMARY_KEYS_WITH_SERIAL_TYPES = _SERIAL_COLUMNS + f"""
      AND EXISTS ({_IN_PRIMARY_KEY})
    ORDER BY table_name, column_name;
"""

FUNCTIONS_WITHOUT_DESCRIPTION = """
    SELECT
        p.oid::regproc::text AS function_name,
        pg_catalog.pg_get_function_identity_arguments(p.oid) AS function_signature
    FROM pg_catalog.pg_proc p
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = p.pronamespace
    WHERE nsp.nspname = %s::text
      AND coalesce(trim(pg_catalog.obj_description(p.oid, 'pg_proc')), '') = ''
    ORDER BY function_name, function_signature;
"""

_INDEX_COLUMNS = """
    SELECT
        x.indrelid::regclass::text AS table_name,
        x.indexrelid::regclass::text AS index_name,
        pg_catalog.pg_relation_size(x.indexrelid) AS index_size,
        array_agg(a.attname::text || ',' || a.attnotnull::text ORDER BY a.attnum) AS columns
    FROM pg_catalog.pg_index x
    JOIN pg_catalog.pg_class ic ON ic.oid = x.indexrelid
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = ic.relnamespace
    JOIN pg_catalog.pg_am am ON am.oid = ic.relam
    JOIN pg_catalog.pg_attribute a
      ON a.attrelid = x.indrelid AND a.attnum = ANY(x.indkey)
    JOIN pg_catalog.pg_type typ ON typ.oid = a.atttypid
    WHERE nsp.nspname = %s::text
"""

INDEXES_WITH_BOOLEAN = _INDEX_COLUMNS + """
      AND NOT x.indisunique
      AND a.atttypid = 'bool'::regtype
    GROUP BY x.indrelid, x.indexrelid
    ORDER BY table_name, index_name;
"""

BTREE_INDEXES_ON_ARRAY_COLUMNS = _INDEX_COLUMNS + """
      AND am.amname = 'btree'
      AND typ.typcategory = 'A'
    GROUP BY x.indrelid, x.indexrelid
    ORDER BY table_name, index_name;
"""

NOT_VALID_CONSTRAINTS = """
    SELECT
        c.conrelid::regclass::text AS table_name,
        c.conname::text AS constraint_name,
        c.contype::text AS constraint_type
    FROM pg_catalog.pg_constraint c
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = c.connamespace
    WHERE NOT c.convalidated
      AND c.contype IN ('c', 'f')
      AND nsp.nspname = %s::text
    ORDER BY table_name, constraint_name;
"""

SEQUENCE_OVERFLOW = """
    WITH sequence_state AS (
        SELECT
            CASE WHEN s.schemaname = 'public' THEN s.sequencename::text
                 ELSE s.schemaname || '.' || s.sequencename
            END AS sequence_name,
            s.data_type::text AS data_type,
            CASE WHEN s.increment_by > 0
                THEN 100.0 * (s.max_value::numeric - coalesce(s.last_value, s.start_value))
                     / (s.max_value::numeric - s.min_value)
                ELSE 100.0 * (coalesce(s.last_value, s.start_value)::numeric - s.min_value)
                     / (s.max_value::numeric - s.min_value)
            END AS remaining_percentage
        FROM pg_catalog.pg_sequences s
        WHERE s.schemaname = %s::text
          AND NOT s.cycle
    )
    SELECT
        sequence_name,
        data_type,
        round(remaining_percentage, 2)::float8 AS remaining_percentage
    FROM sequence_state
    WHERE remaining_percentage <= %s::numeric
    ORDER BY sequence_name;
"""

_FOREIGN_KEY_PAIRS = """
    WITH foreign_keys AS (
        SELECT
            c.conrelid AS table_oid,
            c.conname::text AS constraint_name,
            c.conkey,
            c.confrelid,
            c.confkey,
            array(
                SELECT a.attname::text || ',' || a.attnotnull::text
                FROM unnest(c.conkey) WITH ORDINALITY AS u(attnum, attposition)
                JOIN pg_catalog.pg_attribute a
                  ON a.attrelid = c.conrelid AND a.attnum = u.attnum
                ORDER BY u.attposition
            ) AS columns
        FROM pg_catalog.pg_constraint c
        JOIN pg_catalog.pg_namespace nsp ON nsp.oid = c.connamespace
        WHERE c.contype = 'f'
          AND nsp.nspname = %s::text
    )
    SELECT
        a.table_oid::regclass::text AS table_name,
        a.constraint_name,
        a.columns,
        b.constraint_name AS duplicate_constraint_name,
        b.columns AS duplicate_constraint_columns
    FROM foreign_keys a
    JOIN foreign_keys b
      ON a.table_oid = b.table_oid AND a.constraint_name < b.constraint_name
    WHERE a.confrelid = b.confrelid
"""

DUPLICATED_FOREIGN_KEYS = _FOREIGN_KEY_PAIRS + """
      AND a.conkey = b.conkey
      AND a.confkey = b.confkey
    ORDER BY table_name, constraint_name, duplicate_constraint_name;
"""

INTERSECTED_FOREIGN_KEYS = _FOREIGN_KEY_PAIRS + """
      AND a.conkey <> b.conkey
      AND a.conkey OPERATOR(pg_catalog.&&) b.conkey
    ORDER BY table_name, constraint_name, duplicate_constraint_name;
"""

POSSIBLE_OBJECT_NAME_OVERFLOW = """
    WITH target AS (
        SELECT %s::text AS schema_name,
               current_setting('max_identifier_length')::int AS max_length
    ),
    objects AS (
        SELECT
            pc.oid::regclass::text AS object_name,
            pc.relname::text AS short_name,
            CASE pc.relkind
                WHEN 'r' THEN 'table'
                WHEN 'p' THEN 'partitioned table'
                WHEN 'i' THEN 'index'
                WHEN 'I' THEN 'partitioned index'
                WHEN 'S' THEN 'sequence'
                WHEN 'v' THEN 'view'
                WHEN 'm' THEN 'materialized view'
                ELSE 'relation'
            END AS object_type
        FROM pg_catalog.pg_class pc
        JOIN pg_catalog.pg_namespace nsp ON nsp.oid = pc.relnamespace
        WHERE nsp.nspname = (SELECT schema_name FROM target)
        UNION ALL
        SELECT c.conname::text, c.conname::text, 'constraint'
        FROM pg_catalog.pg_constraint c
        JOIN pg_catalog.pg_namespace nsp ON nsp.oid = c.connamespace
        WHERE nsp.nspname = (SELECT schema_name FROM target)
        UNION ALL
        SELECT p.oid::regproc::text, p.proname::text, 'function'
        FROM pg_catalog.pg_proc p
        JOIN pg_catalog.pg_namespace nsp ON nsp.oid = p.pronamespace
        WHERE nsp.nspname = (SELECT schema_name FROM target)
    )
    SELECT object_name, object_type
    FROM objects
    WHERE octet_length(short_name) >= (SELECT max_length FROM target)
    ORDER BY object_type, object_name;
"""

TABLES_NOT_LINKED_TO_OTHERS = """
    SELECT
        pc.oid::regclass::text AS table_name,
        pg_catalog.pg_table_size(pc.oid) AS table_size
    FROM pg_catalog.pg_class pc
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = pc.relnamespace
    WHERE pc.relkind IN ('r', 'p')
      AND NOT pc.relispartition
      AND nsp.nspname = %s::text
      AND NOT EXISTS (
          SELECT 1
          FROM pg_catalog.pg_constraint c
          WHERE c.contype = 'f'
            AND (c.conrelid = pc.oid OR c.confrelid = pc.oid)
      )
    ORDER BY table_name;
"""

FOREIGN_KEYS_WITH_UNMATCHED_COLUMN_TYPE = """
    SELECT
        c.conrelid::regclass::text AS table_name,
        c.conname::text AS constraint_name,
        array_agg(a.attname::text || ',' || a.attnotnull::text ORDER BY u.attposition)
            AS columns
    FROM pg_catalog.pg_constraint c
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = c.connamespace
    CROSS JOIN LATERAL unnest(c.conkey, c.confkey)
        WITH ORDINALITY AS u(attnum, ref_attnum, attposition)
    JOIN pg_catalog.pg_attribute a
      ON a.attrelid = c.conrelid AND a.attnum = u.attnum
    JOIN pg_catalog.pg_attribute ra
      ON ra.attrelid = c.confrelid AND ra.attnum = u.ref_attnum
    WHERE c.contype = 'f'
      AND nsp.nspname = %s::text
    GROUP BY c.conrelid, c.conname, c.oid
    HAVING bool_or(a.atttypid <> ra.atttypid OR a.atttypmod <> ra.atttypmod)
    ORDER BY table_name, constraint_name;
"""

TABLES_WITH_ZERO_OR_ONE_COLUMN = """
    SELECT
        pc.oid::regclass::text AS table_name,
        pg_catalog.pg_table_size(pc.oid) AS table_size,
        coalesce(
            array_agg(a.attname::text || ',' || a.attnotnull::text ORDER BY a.attnum)
                FILTER (WHERE a.attnum IS NOT NULL),
            '{}'
        ) AS columns
    FROM pg_catalog.pg_class pc
    JOIN pg_catalog.pg_namespace nsp ON nsp.oid = pc.relnamespace
    LEFT JOIN pg_catalog.pg_attribute a
      ON a.attrelid = pc.oid AND a.attnum > 0 AND NOT a.attisdropped
    WHERE pc.relkind IN ('r', 'p')
      AND NOT pc.relispartition
      AND nsp.nspname = %s::text
    GROUP BY pc.oid
    HAVING count(a.attnum) <= 1
    ORDER BY table_name;
"""
