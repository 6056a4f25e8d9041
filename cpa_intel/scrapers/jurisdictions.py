"""The ten provincial CPA directories, as configuration data."""

from cpa_intel.scrapers.directory import (
    PARSER_DETAIL,
    PARSER_GRID,
    PARSER_SCRIPT,
    PROTOCOL_FORM,
    PROTOCOL_QUERY,
    PROTOCOL_SPA,
    DirectoryConfig,
)
from cpa_intel.scrapers.parsers import ColumnMap

# ASP.NET Web Forms control names share a long prefix
_MB = "ctl00$ContentPlaceHolder1$"
_NS = "ctl00$MainContent$"
_NB = "ctl00$cphMain$"

_CONFIGS = [
    DirectoryConfig(
        name="cpa_ontario",
        province="ON",
        entry_url="https://myportal.cpaontario.ca/s/searchdirectory",
        protocol=PROTOCOL_SPA,
        parser=PARSER_SCRIPT,
        strategy="spa_fallback",
        last_name_field="lastName",
        script_variables=("memberResults", "searchResults"),
        description="Salesforce Lightning community; results render client-side",
    ),
    DirectoryConfig(
        name="cpa_bc",
        province="BC",
        entry_url="https://services.bccpa.ca/memberdirectory/search.aspx",
        protocol=PROTOCOL_FORM,
        parser=PARSER_GRID,
        strategy="prefix_sweep",
        columns=ColumnMap(full_name=0, city=1, last_first=True, min_cells=2, table_selector="table#gvMembers"),
        last_name_field="txtLastName",
        clear_fields=("txtFirstName", "ddlCity"),
        extra_fields={"__EVENTTARGET": "", "__EVENTARGUMENT": "", "btnSearch": "Search"},
        required_fields=("txtLastName", "__VIEWSTATE"),
        description="Web Forms grid, prefix match on last name",
    ),
    DirectoryConfig(
        name="cpa_alberta",
        province="AB",
        entry_url="https://www.cpaalberta.ca/Find-a-CPA/Member-Search",
        protocol=PROTOCOL_FORM,
        parser=PARSER_DETAIL,
        strategy="narrowing",
        columns=ColumnMap(full_name=0, city=2, designation=1, min_cells=3),
        last_name_field="LastName",
        first_name_field="FirstName",
        required_fields=("LastName", "FirstName"),
        description="Single hits render a detail page; broad surnames are refused",
    ),
    DirectoryConfig(
        name="cpa_quebec",
        province="QC",
        entry_url="https://cpaquebec.ca/en/find-a-cpa/cpa-directory/",
        search_url="https://cpaquebec.ca/api/sitecore/FindACPA/Search",
        protocol=PROTOCOL_QUERY,
        parser=PARSER_SCRIPT,
        strategy="exact_list",
        last_name_field="Nom",
        extra_fields={"Langue": "en", "PageSize": "100"},
        script_variables=("results", "cpaResults"),
        description="Sitecore controller returning a fragment with an embedded JSON array",
    ),
    DirectoryConfig(
        name="cpa_manitoba",
        province="MB",
        entry_url="https://cpamb.ca/public/member-directory.aspx",
        protocol=PROTOCOL_FORM,
        parser=PARSER_GRID,
        strategy="prefix_sweep",
        columns=ColumnMap(last_name=0, first_name=1, city=2, designation_in_name=True, min_cells=3),
        last_name_field=f"{_MB}txtLastName",
        clear_fields=(f"{_MB}txtFirstName", f"{_MB}txtFirm"),
        extra_fields={"__EVENTTARGET": "", "__EVENTARGUMENT": "", f"{_MB}btnSearch": "Search"},
        required_fields=(f"{_MB}txtLastName", "__VIEWSTATE", "__EVENTVALIDATION"),
        description="Web Forms grid; credentials follow a comma in the last-name column",
    ),
    DirectoryConfig(
        name="cpa_saskatchewan",
        province="SK",
        entry_url="https://www.cpask.ca/find-a-cpa/member-directory",
        protocol=PROTOCOL_QUERY,
        parser=PARSER_GRID,
        strategy="exact_list",
        columns=ColumnMap(full_name=0, designation=1, city=2, min_cells=3),
        last_name_field="lastname",
        extra_fields={"type": "member"},
        description="Server-rendered grid, exact last-name match via query string",
    ),
    DirectoryConfig(
        name="cpa_nova_scotia",
        province="NS",
        entry_url="https://www.cpans.ca/public/directory.aspx",
        protocol=PROTOCOL_FORM,
        parser=PARSER_GRID,
        strategy="exact_list",
        columns=ColumnMap(full_name=0, city=1, firm=2, designation_in_name=True, min_cells=2),
        last_name_field=f"{_NS}txtSurname",
        clear_fields=(f"{_NS}txtGivenName",),
        extra_fields={f"{_NS}btnFind": "Find"},
        required_fields=(f"{_NS}txtSurname", "__VIEWSTATE"),
        description="Web Forms grid, exact surname match",
    ),
    DirectoryConfig(
        name="cpa_new_brunswick",
        province="NB",
        entry_url="https://www.cpanewbrunswick.ca/member-directory.aspx",
        protocol=PROTOCOL_FORM,
        parser=PARSER_GRID,
        strategy="exact_list",
        columns=ColumnMap(full_name=0, city=1, last_first=True, min_cells=2),
        last_name_field=f"{_NB}txtLastName",
        extra_fields={f"{_NB}btnSearch": "Search"},
        captcha_probe=True,
        description="Search form is gated by reCAPTCHA",
    ),
    DirectoryConfig(
        name="cpa_newfoundland",
        province="NL",
        entry_url="https://cpanl.ca/member-directory",
        protocol=PROTOCOL_FORM,
        parser=PARSER_DETAIL,
        strategy="exact_list",
        columns=ColumnMap(full_name=0, city=1, min_cells=2),
        last_name_field="surname",
        required_fields=("surname",),
        description="Legacy HTML form; single hits render a detail page",
    ),
    DirectoryConfig(
        name="cpa_pei",
        province="PE",
        entry_url="https://www.cpapei.ca/find-a-cpa",
        protocol=PROTOCOL_QUERY,
        parser=PARSER_SCRIPT,
        strategy="exact_list",
        last_name_field="q",
        description="Fragment with member cards, occasionally an embedded array",
    ),
]

JURISDICTIONS: dict[str, DirectoryConfig] = {config.name: config for config in _CONFIGS}
