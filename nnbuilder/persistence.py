"""
persistence.py
~~~~~~~~~~~~~~

SQLite-based persistence for saved networks.

Networks are stored as the same versioned JSON payload the codec exports,
never as pickles, and are re-validated through the codec when loaded.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple

from nnbuilder import codec
from nnbuilder.config import MODEL_DIR
from nnbuilder.network import Network

# Configure module logger
logger = logging.getLogger(__name__)

SavedNetwork = Tuple[Network, Tuple[float, ...]]


class ModelDatabase:
    """
    Manages the SQLite database of saved networks.

    The database stores:
    - Network metadata (layer sizes, challenge, score)
    - The exported JSON payload of each network
    """

    def __init__(self, db_path: str = f'{MODEL_DIR}/networks.db'):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    challenge_id TEXT,
                    score REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_challenge
                ON networks(challenge_id)
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    def save_network_to_db(
        self,
        network: Network,
        input_values: Sequence[float],
        network_id: str,
        challenge_id: Optional[str] = None,
        score: Optional[float] = None
    ) -> bool:
        """
        Save a network to the database.

        Args:
            network: Network to save
            input_values: Sandbox inputs stored alongside the network
            network_id: Unique identifier for the network
            challenge_id: Challenge the network was built for, if any
            score: Score against that challenge (0 to 100)

        Returns:
            bool: True if successful, False if the network failed export

        Raises:
            ValueError: If score is out of valid range
        """
        if score is not None and not 0.0 <= score <= 100.0:
            raise ValueError(f"Score must be between 0 and 100, got {score}")

        exported = codec.export_network(network, input_values)
        if not exported.ok:
            logger.error(f"Network '{network_id}' failed export validation: {exported.error}")
            return False

        # A created_at already set for this id is kept on overwrite
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO networks
                (network_id, architecture, payload, challenge_id, score)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    payload = excluded.payload,
                    challenge_id = excluded.challenge_id,
                    score = excluded.score,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                json.dumps(network.layer_sizes()),
                exported.text,
                challenge_id,
                score
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{network.layer_sizes()}, challenge={challenge_id}, score={score}"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[SavedNetwork]:
        """
        Load a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            (network, input_values) or None if not found or no longer valid
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT payload FROM networks WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()

            if row is None:
                logger.warning(f"Network '{network_id}' not found")
                return None

            result = codec.import_text(row['payload'])
            if not result.ok:
                logger.error(f"Stored network '{network_id}' is invalid: {result.error}")
                return None

            logger.info(f"Loaded network '{network_id}'")
            return result.network, result.input_values

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        architecture = json.loads(row['architecture'])
        return {
            'network_id': row['network_id'],
            'architecture': architecture,
            'weight_count': sum(
                architecture[i] * architecture[i + 1]
                for i in range(len(architecture) - 1)
            ),
            'challenge_id': row['challenge_id'],
            'score': row['score'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """
        List all networks with metadata.

        Returns:
            List of network metadata dictionaries
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    network_id,
                    architecture,
                    challenge_id,
                    score,
                    created_at,
                    updated_at
                FROM networks
                ORDER BY created_at DESC
            ''')

            networks = [self._row_to_metadata(row) for row in cursor.fetchall()]
            logger.debug(f"Listed {len(networks)} networks")
            return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )

            deleted = cursor.rowcount > 0
            if deleted:
                logger.info(f"Deleted network '{network_id}'")
            else:
                logger.warning(
                    f"Could not delete network '{network_id}': not found"
                )
            return deleted

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """
        Get network metadata without decoding the payload.

        Args:
            network_id: Unique identifier of the network

        Returns:
            Metadata dictionary or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    network_id,
                    architecture,
                    challenge_id,
                    score,
                    created_at,
                    updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,))

            row = cursor.fetchone()
            if row is None:
                logger.warning(
                    f"Metadata for network '{network_id}' not found"
                )
                return None

            return self._row_to_metadata(row)

    def delete_old_networks_from_db(self, days: int) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Args:
            days: Age threshold in days (0 deletes everything created before now)

        Returns:
            int: Number of deleted networks

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                DELETE FROM networks
                WHERE julianday(created_at) < julianday('now', ?)
            ''', (f'-{days} days',))

            deleted = cursor.rowcount
            logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
            return deleted


# Global database instance
_db = None


def _get_db() -> ModelDatabase:
    """
    Get or create the global database instance.

    Returns:
        ModelDatabase: The global database instance
    """
    global _db
    if _db is None:
        _db = ModelDatabase()
    return _db


def _db_for(model_dir: str) -> ModelDatabase:
    # Use singleton if default path, otherwise create new instance
    if model_dir == MODEL_DIR:
        return _get_db()
    return ModelDatabase(db_path=f'{model_dir}/networks.db')


def _valid_id(network_id: Any) -> bool:
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False
    return True


def save_network(
    network: Network,
    input_values: Sequence[float],
    network_id: str,
    model_dir: str = MODEL_DIR,
    challenge_id: Optional[str] = None,
    score: Optional[float] = None
) -> bool:
    """
    Save a network to the SQLite database.

    Args:
        network: The network to save
        input_values: Sandbox inputs saved with it
        network_id: A unique identifier for the network
        model_dir: Directory for the database file
        challenge_id: Challenge the network targets, if any
        score: Score against that challenge (0 to 100)

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> save_network(create_initial_network(), (0.5, 0.5), "blank")
        True
    """
    if not _valid_id(network_id):
        return False

    try:
        return _db_for(model_dir).save_network_to_db(
            network, input_values, network_id, challenge_id, score
        )

    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False


def load_network(network_id: str, model_dir: str = MODEL_DIR) -> Optional[SavedNetwork]:
    """
    Load a network from the SQLite database.

    Args:
        network_id: The unique identifier of the network to load
        model_dir: Directory where the database is stored

    Returns:
        (network, input_values) or None if not found

    Example:
        >>> saved = load_network("blank")
        >>> if saved:
        ...     net, inputs = saved
    """
    if not _valid_id(network_id):
        return None

    try:
        return _db_for(model_dir).load_network_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(f"Database error loading network '{network_id}': {e}")
        return None


def list_saved_networks(model_dir: str = MODEL_DIR) -> List[Dict[str, Any]]:
    """
    List all saved networks with their metadata.

    Args:
        model_dir: Directory where the database is stored

    Returns:
        list: A list of metadata dictionaries for each saved network
    """
    try:
        return _db_for(model_dir).list_networks_from_db()

    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []


def delete_network(network_id: str, model_dir: str = MODEL_DIR) -> bool:
    """
    Delete a saved network from the database.

    Args:
        network_id: The unique identifier of the network to delete
        model_dir: Directory where the database is stored

    Returns:
        bool: True if deletion was successful, False otherwise
    """
    if not _valid_id(network_id):
        return False

    try:
        return _db_for(model_dir).delete_network_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False


def get_network_metadata(
    network_id: str,
    model_dir: str = MODEL_DIR
) -> Optional[Dict[str, Any]]:
    """
    Get metadata for a specific network without loading it.

    Args:
        network_id: The unique identifier of the network
        model_dir: Directory where the database is stored

    Returns:
        dict: Network metadata or None if not found
    """
    if not _valid_id(network_id):
        return None

    try:
        return _db_for(model_dir).get_network_metadata_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(
            f"Database error getting metadata for '{network_id}': {e}"
        )
        return None
    except json.JSONDecodeError as e:
        logger.error(
            f"JSON decode error getting metadata for '{network_id}': {e}"
        )
        return None


def delete_old_networks(days: int, model_dir: str = MODEL_DIR) -> int:
    """
    Delete saved networks older than ``days`` days.

    Args:
        days: Age threshold in days
        model_dir: Directory where the database is stored

    Returns:
        int: Number of deleted networks, or -1 on a database error

    Raises:
        ValueError: If days is negative
    """
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")

    try:
        return _db_for(model_dir).delete_old_networks_from_db(days)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1
