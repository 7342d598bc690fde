"""Account configuration store backed by accounts.yaml"""

import logging
import yaml
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional
from pydantic import ValidationError
from ..exceptions import ConfigurationError
from ..models import AccountConfig


class AccountConfigStore(ABC):
    """Supplies validated per-account trading parameters"""

    @abstractmethod
    def list_accounts(self) -> List[AccountConfig]:
        pass

    def list_active_accounts(self) -> List[AccountConfig]:
        return [account for account in self.list_accounts() if account.is_active]

    def get_account(self, account_id: int) -> Optional[AccountConfig]:
        for account in self.list_accounts():
            if account.account_id == account_id:
                return account
        return None

    def get_account_by_client_id(self, client_id: str) -> Optional[AccountConfig]:
        for account in self.list_accounts():
            if account.client_id == client_id:
                return account
        return None


class StaticAccountConfigStore(AccountConfigStore):
    """Fixed list of accounts, for embedding and tests"""

    def __init__(self, accounts: List[AccountConfig]):
        self._accounts = list(accounts)

    def list_accounts(self) -> List[AccountConfig]:
        return list(self._accounts)


class YamlAccountConfigStore(AccountConfigStore):
    """
    Reads `accounts:` entries from a YAML file.

    The file is re-read on every call so edits apply to the next alert.
    Any invalid entry fails the whole load; a half-loaded account list would
    silently skip accounts.
    """

    def __init__(self, accounts_path: str | Path, logger: Optional[logging.Logger] = None):
        self.accounts_path = Path(accounts_path)
        self.logger = logger or logging.getLogger(__name__)

    def list_accounts(self) -> List[AccountConfig]:
        if not self.accounts_path.exists():
            raise ConfigurationError(f"Accounts file not found: {self.accounts_path}")

        try:
            with open(self.accounts_path, 'r') as f:
                yaml_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {self.accounts_path}: {e}") from e

        if not yaml_data:
            self.logger.warning(f"No accounts defined in {self.accounts_path}")
            return []

        accounts_data = yaml_data.get('accounts', []) if isinstance(yaml_data, dict) else None
        if not isinstance(accounts_data, list):
            raise ConfigurationError(f"'accounts' in {self.accounts_path} must be a list")

        accounts = []
        seen_ids = set()
        for index, entry in enumerate(accounts_data):
            label = entry.get('account_id', f"#{index + 1}") if isinstance(entry, dict) else f"#{index + 1}"
            try:
                account = AccountConfig(**entry)
            except (TypeError, ValidationError) as e:
                raise ConfigurationError(f"Invalid configuration for account {label}: {e}") from e

            if account.account_id in seen_ids:
                raise ConfigurationError(f"Duplicate account_id {account.account_id} in {self.accounts_path}")
            seen_ids.add(account.account_id)
            accounts.append(account)

        self.logger.debug(f"Loaded {len(accounts)} accounts from {self.accounts_path}")
        return accounts
